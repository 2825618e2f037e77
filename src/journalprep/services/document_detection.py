"""Document geometry detection.

Finds where the journal page sits in a photo, trying in order:

1. A rectangle (Canny edges, contours, 4-point polygon approximation)
2. Foreground segmentation (bright paper on a darker surface)
3. Optionally, a long flat line marking the bottom edge of the page

Detection runs on a downscaled grayscale copy; results are reported in
normalized coordinates or in source-pixel regions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from journalprep.services.geometry import (
    Quadrilateral,
    corner_angles,
    edge_lengths,
    is_convex_quad,
    order_points,
)
from journalprep.services.preprocessing_config import DetectionConfig
from journalprep.services.raster import RasterBuffer, Region
from journalprep.utils.exceptions import DetectionMiss, EmptyForegroundMaskError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SegmentationMask:
    """Binary foreground mask plus the size of the image it was computed for.

    The mask may be smaller than the source; bounds are scaled back to
    source pixels.
    """

    mask: np.ndarray
    source_size: tuple[int, int]

    @property
    def mask_size(self) -> tuple[int, int]:
        return int(self.mask.shape[1]), int(self.mask.shape[0])

    def _largest_component(self) -> tuple[int, int, int, int, int] | None:
        """(x, y, w, h, area) of the largest 4-connected component, mask pixels."""
        binary = self.mask.astype(np.uint8)
        if not binary.any():
            return None
        count, _, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)
        if count < 2:
            return None
        # Label 0 is the background
        best = 1 + int(np.argmax(stats[1:, cv2.CC_STAT_AREA]))
        x, y, w, h, area = (int(v) for v in stats[best])
        return x, y, w, h, area

    def largest_component_fraction(self) -> float:
        """Area of the largest component relative to the whole mask."""
        comp = self._largest_component()
        if comp is None:
            return 0.0
        mw, mh = self.mask_size
        return comp[4] / float(mw * mh)

    def largest_component_bounds(self) -> Region | None:
        """Tight bounding box of the largest component, in source pixels."""
        comp = self._largest_component()
        if comp is None:
            return None
        x, y, w, h, _ = comp
        mw, mh = self.mask_size
        sw, sh = self.source_size
        sx = sw / mw
        sy = sh / mh

        x0 = max(0, int(np.floor(x * sx)))
        y0 = max(0, int(np.floor(y * sy)))
        x1 = min(sw, int(np.ceil((x + w) * sx)))
        y1 = min(sh, int(np.ceil((y + h) * sy)))
        return Region(x0, y0, x1 - x0, y1 - y0)

    def require_bounds(self) -> Region:
        """Like largest_component_bounds, but raises on an empty mask."""
        bounds = self.largest_component_bounds()
        if bounds is None or bounds.is_empty:
            mw, mh = self.mask_size
            raise EmptyForegroundMaskError(mw, mh)
        return bounds


@dataclass(frozen=True)
class PageBottomEdge:
    """Row (source pixels, top-left origin) where the page ends."""

    y: int
    source_size: tuple[int, int]

    def crop_region(self) -> Region:
        """Everything above the edge."""
        return Region(0, 0, self.source_size[0], self.y)


Detection = Quadrilateral | SegmentationMask | PageBottomEdge | None


@dataclass(frozen=True)
class _Candidate:
    quad: Quadrilateral
    score: float


class GeometryDetector:
    """Locate the journal page inside a photo."""

    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.config = config or DetectionConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, image: RasterBuffer) -> Detection:
        """Return the best document geometry found, or None.

        Never raises for a valid buffer; OpenCV errors are logged and
        treated as a miss.
        """
        try:
            gray, boosted = self._prepare(image)

            quad = self.detect_rectangle(boosted)
            if quad is not None:
                return quad

            if self.config.enable_segmentation:
                mask = self.segment_foreground(gray, image.size)
                if mask is not None:
                    return mask

            if self.config.enable_edge_fallback:
                edge = self.detect_bottom_edge(boosted, image.size)
                if edge is not None:
                    return edge
        except cv2.error as e:
            logger.warning(f"Document detection failed, continuing without geometry: {e}")
            return None

        logger.debug(f"No document geometry found in {image.width}x{image.height} image")
        return None

    def require(self, image: RasterBuffer) -> Quadrilateral | SegmentationMask | PageBottomEdge:
        """Like detect, but raises DetectionMiss instead of returning None."""
        result = self.detect(image)
        if result is None:
            raise DetectionMiss(image.width, image.height)
        return result

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def _prepare(self, image: RasterBuffer) -> tuple[np.ndarray, np.ndarray]:
        """Downscaled uint8 grayscale, plain and contrast-boosted."""
        luma = image.to_gray()
        h, w = luma.shape
        longest = max(w, h)
        if longest > self.config.detection_max_side:
            scale = self.config.detection_max_side / longest
            size = (max(1, round(w * scale)), max(1, round(h * scale)))
            luma = cv2.resize(luma, size, interpolation=cv2.INTER_AREA)

        boosted = np.clip((luma - 0.5) * self.config.detection_contrast + 0.5, 0.0, 1.0)
        gray = np.round(luma * 255.0).astype(np.uint8)
        return gray, np.round(boosted * 255.0).astype(np.uint8)

    # ------------------------------------------------------------------
    # 1. Rectangle detection
    # ------------------------------------------------------------------

    def detect_rectangle(self, gray: np.ndarray) -> Quadrilateral | None:
        """Best-scoring rectangle candidate in a grayscale image, or None."""
        h, w = gray.shape[:2]

        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, 50, 150)
        # Dilate to connect edges
        edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return None

        contours = sorted(contours, key=cv2.contourArea, reverse=True)
        candidates: list[_Candidate] = []
        for contour in contours:
            if len(candidates) >= self.config.max_candidates:
                break
            candidate = self._evaluate_contour(contour, (w, h))
            if candidate is not None:
                candidates.append(candidate)

        if not candidates:
            return None

        best = max(candidates, key=lambda c: c.score)
        logger.debug(
            f"Rectangle detection: {len(candidates)} candidate(s), "
            f"best score={best.score:.3f} confidence={best.quad.confidence:.2f}"
        )
        return best.quad

    def _evaluate_contour(
        self, contour: np.ndarray, size: tuple[int, int]
    ) -> _Candidate | None:
        cfg = self.config
        w, h = size

        peri = cv2.arcLength(contour, True)
        approx = cv2.approxPolyDP(contour, 0.02 * peri, True)
        if len(approx) != 4 or not cv2.isContourConvex(approx):
            return None

        corners = order_points(approx.reshape(4, 2))
        if len(np.unique(corners, axis=0)) < 4 or not is_convex_quad(corners):
            return None

        top, right, bottom, left = edge_lengths(corners)
        if min(top, right, bottom, left) / min(w, h) < cfg.min_size:
            return None

        quad_w = (top + bottom) / 2.0
        quad_h = (left + right) / 2.0
        aspect = min(quad_w, quad_h) / max(quad_w, quad_h)
        if not cfg.min_aspect <= aspect <= cfg.max_aspect:
            return None

        deviation = float(np.max(np.abs(corner_angles(corners) - 90.0)))
        if deviation > cfg.quadrature_tolerance:
            return None

        (_, _), (rw, rh), _ = cv2.minAreaRect(contour)
        rect_area = rw * rh
        if rect_area <= 0:
            return None
        rectangularity = min(1.0, cv2.contourArea(contour) / rect_area)
        confidence = rectangularity * (1.0 - deviation / 90.0)
        if confidence < cfg.min_confidence:
            return None

        quad = Quadrilateral.from_pixels(corners, size, confidence=confidence)
        min_x, min_y, max_x, max_y = quad.bounding_box()
        # Top edge in bottom-left coordinates is 1 - min_y
        top_edge = 1.0 - min_y
        score = (max_x - min_x) * (max_y - min_y) - (1.0 - top_edge) * cfg.position_bias
        return _Candidate(quad, score)

    # ------------------------------------------------------------------
    # 2. Foreground segmentation
    # ------------------------------------------------------------------

    def segment_foreground(
        self, gray: np.ndarray, source_size: tuple[int, int]
    ) -> SegmentationMask | None:
        """Bright page on a dark surface, as a mask; None when not photo-like."""
        cfg = self.config
        h, w = gray.shape[:2]
        center = gray[h // 4 : 3 * h // 4, w // 4 : 3 * w // 4]
        if center.size == 0:
            return None

        # A photo of a page on a desk has dark borders around a bright center.
        border_w = max(w // 10, 20)
        border_h = max(h // 10, 20)
        border_means = [
            gray[:border_h, :].mean(),  # top
            gray[-border_h:, :].mean(),  # bottom
            gray[:, :border_w].mean(),  # left
            gray[:, -border_w:].mean(),  # right
        ]
        center_brightness = center.mean()

        dark_borders = sum(1 for b in border_means if center_brightness - b > cfg.dark_border_delta)
        if dark_borders < cfg.min_dark_borders:
            logger.debug(
                f"Not a photo: only {dark_borders}/4 borders are dark "
                f"(borders={[f'{b:.0f}' for b in border_means]}, center={center_brightness:.0f})"
            )
            return None

        # Threshold halfway between border and center brightness
        border_brightness = float(np.mean(border_means))
        thresh_val = int((border_brightness + center_brightness) / 2)
        _, doc_mask = cv2.threshold(gray, thresh_val, 255, cv2.THRESH_BINARY)

        doc_mask = cv2.morphologyEx(doc_mask, cv2.MORPH_CLOSE, np.ones((15, 15), np.uint8))
        doc_mask = cv2.morphologyEx(doc_mask, cv2.MORPH_OPEN, np.ones((10, 10), np.uint8))

        mask = SegmentationMask(doc_mask > 0, source_size)
        try:
            mask.require_bounds()
        except EmptyForegroundMaskError as e:
            logger.debug(f"Segmentation miss: {e}")
            return None

        fraction = mask.largest_component_fraction()
        if fraction < cfg.min_segment_area:
            logger.debug(
                f"Bright region too small: {fraction:.1%} of image "
                f"(need {cfg.min_segment_area:.0%})"
            )
            return None

        logger.debug(f"Foreground segmentation: largest component {fraction:.1%} of frame")
        return mask

    # ------------------------------------------------------------------
    # 3. Page-bottom edge
    # ------------------------------------------------------------------

    def detect_bottom_edge(
        self, gray: np.ndarray, source_size: tuple[int, int]
    ) -> PageBottomEdge | None:
        """Long flat contour near the bottom of the frame, or None."""
        cfg = self.config
        h, w = gray.shape[:2]

        edges = cv2.Canny(cv2.GaussianBlur(gray, (5, 5), 0), 50, 150)
        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)

        # Lower edge of the chosen line, bottom-left origin, normalized
        bottom_y = 0.0
        for contour in contours:
            x, y, cw, ch = cv2.boundingRect(contour)
            width = cw / w
            height = ch / h
            lower = 1.0 - (y + ch) / h
            if width > cfg.edge_min_width and height < cfg.edge_max_height and lower < cfg.edge_max_bottom:
                bottom_y = max(bottom_y, lower)

        if bottom_y <= 0.0:
            return None

        sw, sh = source_size
        row = int(round((1.0 - bottom_y) * sh))
        if row <= 0 or row >= sh:
            return None
        logger.debug(f"Page bottom edge found at y={row}")
        return PageBottomEdge(row, source_size)
