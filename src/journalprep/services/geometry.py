"""Quadrilateral geometry and coordinate-system conversion.

Detectors report corners in normalized coordinates. Rasters are addressed
in pixels with a top-left origin. Platform document detectors commonly use
a bottom-left origin instead, so the convention is always explicit here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

Point = tuple[float, float]


class OriginConvention(str, Enum):
    """Where (0, 0) sits in a normalized coordinate system."""

    TOP_LEFT = "top_left"
    BOTTOM_LEFT = "bottom_left"


def normalized_to_pixel(
    point: Point,
    image_size: tuple[int, int],
    origin: OriginConvention = OriginConvention.TOP_LEFT,
) -> Point:
    """Convert a normalized point to top-left-origin pixel coordinates.

    Args:
        point: (x, y) with each component in [0, 1]
        image_size: (width, height) in pixels
        origin: Convention the normalized point is expressed in

    Returns:
        (x, y) in pixels, top-left origin
    """
    x, y = point
    width, height = image_size
    if origin is OriginConvention.BOTTOM_LEFT:
        y = 1.0 - y
    return (x * width, y * height)


def pixel_to_normalized(point: Point, image_size: tuple[int, int]) -> Point:
    """Inverse of normalized_to_pixel for the top-left convention."""
    width, height = image_size
    return (point[0] / width, point[1] / height)


def order_points(pts: np.ndarray) -> np.ndarray:
    """
    Order points in clockwise order: top-left, top-right, bottom-right, bottom-left.

    Args:
        pts: Array of 4 points

    Returns:
        Ordered points array
    """
    pts = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    rect = np.zeros((4, 2), dtype="float32")

    # Top-left has smallest sum, bottom-right has largest sum
    s = pts.sum(axis=1)
    rect[0] = pts[np.argmin(s)]
    rect[2] = pts[np.argmax(s)]

    # Top-right has smallest diff, bottom-left has largest diff
    diff = np.diff(pts, axis=1)
    rect[1] = pts[np.argmin(diff)]
    rect[3] = pts[np.argmax(diff)]

    return rect


def polygon_area(pts: np.ndarray) -> float:
    """Shoelace area of a polygon given in order (either winding)."""
    pts = np.asarray(pts, dtype=np.float64)
    x = pts[:, 0]
    y = pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def edge_lengths(corners: np.ndarray) -> tuple[float, float, float, float]:
    """Lengths of the (top, right, bottom, left) edges of a TL, TR, BR, BL quad."""
    c = np.asarray(corners, dtype=np.float64)
    top = float(np.linalg.norm(c[1] - c[0]))
    right = float(np.linalg.norm(c[2] - c[1]))
    bottom = float(np.linalg.norm(c[2] - c[3]))
    left = float(np.linalg.norm(c[3] - c[0]))
    return top, right, bottom, left


def corner_angles(corners: np.ndarray) -> np.ndarray:
    """Interior angle in degrees at each corner of an ordered quad."""
    c = np.asarray(corners, dtype=np.float64)
    angles = np.zeros(4)
    for i in range(4):
        a = c[i - 1] - c[i]
        b = c[(i + 1) % 4] - c[i]
        na = np.linalg.norm(a)
        nb = np.linalg.norm(b)
        if na < 1e-9 or nb < 1e-9:
            angles[i] = 0.0
            continue
        cos = np.clip(np.dot(a, b) / (na * nb), -1.0, 1.0)
        angles[i] = np.degrees(np.arccos(cos))
    return angles


def is_convex_quad(corners: np.ndarray) -> bool:
    """True when an ordered quad turns the same way at every corner."""
    c = np.asarray(corners, dtype=np.float64)
    signs = []
    for i in range(4):
        a = c[(i + 1) % 4] - c[i]
        b = c[(i + 2) % 4] - c[(i + 1) % 4]
        signs.append(a[0] * b[1] - a[1] * b[0])
    signs = np.array(signs)
    return bool(np.all(signs > 0) or np.all(signs < 0))


def has_collinear_triple(corners: np.ndarray, tolerance: float = 1e-3) -> bool:
    """True if any three corners are (nearly) collinear.

    The tolerance is relative to the squared length of the longest edge.
    """
    c = np.asarray(corners, dtype=np.float64)
    scale = max(max(edge_lengths(c)) ** 2, 1e-12)
    for i in range(4):
        p, q, r = c[i], c[(i + 1) % 4], c[(i + 2) % 4]
        cross = (q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0])
        if abs(cross) / scale < tolerance:
            return True
    return False


@dataclass(frozen=True)
class Quadrilateral:
    """Four normalized corners (top-left origin) plus a detector confidence."""

    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point
    confidence: float = 1.0

    @classmethod
    def from_pixels(
        cls, corners: np.ndarray, image_size: tuple[int, int], confidence: float = 1.0
    ) -> Quadrilateral:
        """Build from 4 pixel points in any order."""
        tl, tr, br, bl = order_points(corners)
        return cls(
            top_left=pixel_to_normalized((float(tl[0]), float(tl[1])), image_size),
            top_right=pixel_to_normalized((float(tr[0]), float(tr[1])), image_size),
            bottom_left=pixel_to_normalized((float(bl[0]), float(bl[1])), image_size),
            bottom_right=pixel_to_normalized((float(br[0]), float(br[1])), image_size),
            confidence=float(confidence),
        )

    @classmethod
    def from_bottom_left(
        cls,
        top_left: Point,
        top_right: Point,
        bottom_left: Point,
        bottom_right: Point,
        confidence: float = 1.0,
    ) -> Quadrilateral:
        """Build from corners given in a bottom-left-origin normalized system."""

        def flip(p: Point) -> Point:
            return (p[0], 1.0 - p[1])

        return cls(flip(top_left), flip(top_right), flip(bottom_left), flip(bottom_right), confidence)

    def corners(self) -> np.ndarray:
        """Normalized corners as a 4x2 array ordered TL, TR, BR, BL."""
        return np.array(
            [self.top_left, self.top_right, self.bottom_right, self.bottom_left], dtype=np.float64
        )

    def to_pixels(self, image_size: tuple[int, int]) -> np.ndarray:
        """Pixel corners (top-left origin) as float32 4x2, ordered TL, TR, BR, BL."""
        pts = [
            normalized_to_pixel(p, image_size)
            for p in (self.top_left, self.top_right, self.bottom_right, self.bottom_left)
        ]
        return np.array(pts, dtype=np.float32)

    def bounding_box(self) -> tuple[float, float, float, float]:
        """Normalized (min_x, min_y, max_x, max_y), top-left origin."""
        c = self.corners()
        return (
            float(c[:, 0].min()),
            float(c[:, 1].min()),
            float(c[:, 0].max()),
            float(c[:, 1].max()),
        )

    def area(self) -> float:
        """Normalized polygon area."""
        return polygon_area(self.corners())

    def pixel_area(self, image_size: tuple[int, int]) -> float:
        return polygon_area(self.to_pixels(image_size))
