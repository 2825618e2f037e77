"""Pytest configuration for journalprep tests.

Synthetic page photos are drawn with cv2 so every scenario has a known
ground truth.
"""

import cv2
import numpy as np
import pytest

from journalprep.services.raster import RasterBuffer

# Rotated page: 1600x2200 rectangle, 15 degrees, centered in a 3000x4000 frame
ROTATED_PAGE_SIZE = (1600, 2200)
ROTATED_PAGE_FRAME = (3000, 4000)
ROTATED_PAGE_ANGLE = 15.0


def make_rotated_page_photo() -> RasterBuffer:
    """White frame with a gray, black-outlined page rotated 15 degrees."""
    w, h = ROTATED_PAGE_FRAME
    img = np.full((h, w, 3), 255, dtype=np.uint8)
    box = cv2.boxPoints(((w / 2, h / 2), ROTATED_PAGE_SIZE, ROTATED_PAGE_ANGLE))
    pts = np.round(box).astype(np.int32)
    cv2.fillPoly(img, [pts], (128, 128, 128))
    cv2.polylines(img, [pts], isClosed=True, color=(0, 0, 0), thickness=12)
    return RasterBuffer(img)


def make_bottom_band_image(width=1000, height=1200, band=120) -> RasterBuffer:
    """White image whose bottom rows are black."""
    img = np.full((height, width, 3), 255, dtype=np.uint8)
    img[height - band :, :] = 0
    return RasterBuffer(img)


def make_page_on_desk(width=800, height=1000) -> RasterBuffer:
    """Bright elliptical page on a dark surface (no four-corner outline)."""
    img = np.full((height, width, 3), 30, dtype=np.uint8)
    cv2.ellipse(img, (width // 2, height // 2), (250, 350), 0, 0, 360, (230, 230, 230), -1)
    return RasterBuffer(img)


def make_page_bottom_line(width=800, height=1000, line_y=800) -> RasterBuffer:
    """White image with a long, thin dark line near the bottom."""
    img = np.full((height, width, 3), 255, dtype=np.uint8)
    img[line_y : line_y + 6, 40 : width - 40] = 0
    return RasterBuffer(img)


@pytest.fixture(scope="session")
def rotated_page_photo():
    return make_rotated_page_photo()


@pytest.fixture
def uniform_gray():
    """400x300 mid-gray image."""
    return RasterBuffer(np.full((300, 400, 3), 128, dtype=np.uint8))


@pytest.fixture
def bottom_band_image():
    return make_bottom_band_image()


@pytest.fixture
def page_on_desk():
    return make_page_on_desk()


@pytest.fixture
def page_bottom_line():
    return make_page_bottom_line()


@pytest.fixture
def noisy_rgb():
    """Deterministic random 64x64 RGB image."""
    rng = np.random.default_rng(1234)
    return RasterBuffer(rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8))
