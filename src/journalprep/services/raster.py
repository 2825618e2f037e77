"""
In-memory raster buffer shared by every pipeline stage.

A RasterBuffer owns an interleaved 8-bit RGB or RGBA array plus an origin.
Crop regions are expressed in extent coordinates (origin-relative), so a
crop of a crop still refers to positions in the originally decoded photo.
Every operation returns a new buffer backed by its own array.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from journalprep.utils.exceptions import DecodeFailure, ValidationError

logger = logging.getLogger(__name__)

# Rec. 709 luma coefficients (R, G, B)
REC709_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


class PixelFormat(str, Enum):
    RGB8 = "RGB8"
    RGBA8 = "RGBA8"

    @property
    def channels(self) -> int:
        return 4 if self is PixelFormat.RGBA8 else 3


@dataclass(frozen=True)
class Region:
    """Integer rectangle in extent coordinates (top-left origin)."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return max(self.width, 0) * max(self.height, 0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def intersection(self, other: Region) -> Region:
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        return Region(x0, y0, max(0, x1 - x0), max(0, y1 - y0))

    def translated(self, dx: int, dy: int) -> Region:
        return Region(self.x + dx, self.y + dy, self.width, self.height)


@dataclass(frozen=True, eq=False)
class RasterBuffer:
    """Image samples plus geometry.

    Attributes:
        pixels: uint8 array of shape (height, width, 3|4), RGB(A) order
        origin: (x, y) offset of the top-left sample in extent coordinates
    """

    pixels: np.ndarray
    origin: tuple[int, int] = (0, 0)

    def __post_init__(self) -> None:
        arr = self.pixels
        if not isinstance(arr, np.ndarray) or arr.ndim != 3:
            raise ValidationError("pixels", reason="expected an (H, W, C) array")
        if arr.dtype != np.uint8:
            raise ValidationError("pixels", value=str(arr.dtype), reason="expected uint8 samples")
        if arr.shape[2] not in (3, 4):
            raise ValidationError(
                "pixels", value=str(arr.shape[2]), reason="expected 3 or 4 channels"
            )
        if arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise ValidationError(
                "pixels",
                value=f"{arr.shape[1]}x{arr.shape[0]}",
                reason="width and height must be positive",
            )

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def pixel_format(self) -> PixelFormat:
        return PixelFormat.RGBA8 if self.channels == 4 else PixelFormat.RGB8

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def extent(self) -> Region:
        return Region(self.origin[0], self.origin[1], self.width, self.height)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, array: np.ndarray, origin: tuple[int, int] = (0, 0)) -> RasterBuffer:
        """Wrap an array, taking a private contiguous copy.

        Accepts (H, W) grayscale arrays as well, which are expanded to RGB.
        """
        arr = np.asarray(array)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        return cls(np.ascontiguousarray(arr, dtype=np.uint8).copy(), origin)

    @classmethod
    def blank(
        cls, width: int, height: int, color: tuple[int, ...] = (255, 255, 255)
    ) -> RasterBuffer:
        """Create a solid-colour buffer."""
        if width <= 0 or height <= 0:
            raise ValidationError("size", value=f"{width}x{height}", reason="must be positive")
        arr = np.empty((height, width, len(color)), dtype=np.uint8)
        arr[:, :] = color
        return cls(arr)

    def with_pixels(self, pixels: np.ndarray) -> RasterBuffer:
        """Return a new buffer with the same origin and new samples."""
        return RasterBuffer(np.ascontiguousarray(pixels, dtype=np.uint8), self.origin)

    def copy(self) -> RasterBuffer:
        return RasterBuffer(self.pixels.copy(), self.origin)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def rgb(self) -> np.ndarray:
        """The colour planes without alpha (a view, do not mutate)."""
        return self.pixels[:, :, :3]

    def alpha(self) -> np.ndarray | None:
        return self.pixels[:, :, 3] if self.has_alpha else None

    def to_gray(self) -> np.ndarray:
        """Rec. 709 luminance as float32 in [0, 1]."""
        rgb = self.rgb().astype(np.float32) / 255.0
        return rgb @ REC709_WEIGHTS

    # ------------------------------------------------------------------
    # Cropping
    # ------------------------------------------------------------------

    def crop(self, region: Region) -> RasterBuffer:
        """Crop to *region* (extent coordinates), clipped to the extent.

        Raises:
            ValidationError: If the clipped region is empty
        """
        clipped = region.intersection(self.extent)
        if clipped.is_empty:
            raise ValidationError(
                "region",
                value=f"{region}",
                reason="does not overlap the image extent",
            )
        x0 = clipped.x - self.origin[0]
        y0 = clipped.y - self.origin[1]
        sub = self.pixels[y0 : y0 + clipped.height, x0 : x0 + clipped.width].copy()
        return RasterBuffer(sub, (clipped.x, clipped.y))

    def __repr__(self) -> str:
        return (
            f"RasterBuffer({self.width}x{self.height}, {self.pixel_format.value}, "
            f"origin={self.origin})"
        )


# ----------------------------------------------------------------------
# Decode / encode
# ----------------------------------------------------------------------


def _image_to_buffer(img: Image.Image) -> RasterBuffer:
    # Phone photos carry their rotation in EXIF
    img = ImageOps.exif_transpose(img)
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        img = img.convert("RGBA")
    elif img.mode != "RGB":
        img = img.convert("RGB")
    return RasterBuffer.from_array(np.asarray(img))


def decode_image(data: bytes, source: str = "<bytes>") -> RasterBuffer:
    """Decode an encoded image (PNG, JPEG, TIFF, ...) into a RasterBuffer.

    Raises:
        DecodeFailure: If the bytes are not a readable image
    """
    if not data:
        raise DecodeFailure(source, "empty input")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            buffer = _image_to_buffer(img)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeFailure(source, str(e)) from e

    logger.debug(f"Decoded {source}: {buffer.width}x{buffer.height} {buffer.pixel_format.value}")
    return buffer


def load_image(path: str | Path) -> RasterBuffer:
    """Read and decode an image file.

    Raises:
        DecodeFailure: If the file is missing or not a readable image
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeFailure(str(path), e.strerror or str(e)) from e
    return decode_image(data, source=str(path))


def encode_png(buffer: RasterBuffer) -> bytes:
    """Encode a buffer as PNG bytes (lossless)."""
    out = io.BytesIO()
    Image.fromarray(buffer.pixels).save(out, format="PNG")
    return out.getvalue()


def save_image(buffer: RasterBuffer, path: str | Path) -> Path:
    """Write a buffer to *path* as PNG, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_png(buffer))
    logger.debug(f"Saved {buffer.width}x{buffer.height} image to {path}")
    return path
