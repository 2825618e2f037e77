"""Tests for document geometry detection."""

import warnings

import cv2
import numpy as np
import pytest

from journalprep.services.document_detection import (
    GeometryDetector,
    PageBottomEdge,
    SegmentationMask,
)
from journalprep.services.geometry import Quadrilateral
from journalprep.services.preprocessing_config import DetectionConfig
from journalprep.services.raster import RasterBuffer, Region
from journalprep.utils.exceptions import DetectionMiss, EmptyForegroundMaskError


class TestSegmentationMask:
    def test_largest_component_bounds(self):
        mask = np.zeros((100, 100), dtype=bool)
        mask[10:20, 10:20] = True  # small
        mask[40:90, 30:80] = True  # large
        bounds = SegmentationMask(mask, (100, 100)).largest_component_bounds()
        assert bounds == Region(30, 40, 50, 50)

    def test_diagonal_pixels_are_separate_components(self):
        mask = np.zeros((10, 10), dtype=bool)
        mask[0:3, 0:3] = True
        mask[3:5, 3:5] = True  # touches only at a corner
        bounds = SegmentationMask(mask, (10, 10)).largest_component_bounds()
        assert bounds == Region(0, 0, 3, 3)

    def test_bounds_are_scaled_to_source(self):
        mask = np.zeros((50, 50), dtype=bool)
        mask[10:20, 5:25] = True
        bounds = SegmentationMask(mask, (200, 100)).largest_component_bounds()
        assert bounds == Region(20, 20, 80, 20)

    def test_empty_mask(self):
        mask = SegmentationMask(np.zeros((20, 20), dtype=bool), (20, 20))
        assert mask.largest_component_bounds() is None
        assert mask.largest_component_fraction() == 0.0
        with pytest.raises(EmptyForegroundMaskError):
            mask.require_bounds()


class TestRectangleDetection:
    def test_axis_aligned_page(self):
        img = np.full((800, 600, 3), 255, dtype=np.uint8)
        cv2.rectangle(img, (100, 150), (500, 650), (60, 60, 60), -1)
        quad = GeometryDetector().detect(RasterBuffer(img))

        assert isinstance(quad, Quadrilateral)
        min_x, min_y, max_x, max_y = quad.bounding_box()
        assert min_x == pytest.approx(100 / 600, abs=0.01)
        assert max_x == pytest.approx(500 / 600, abs=0.01)
        assert min_y == pytest.approx(150 / 800, abs=0.01)
        assert max_y == pytest.approx(650 / 800, abs=0.01)
        assert 0.3 <= quad.confidence <= 1.0

    def test_rotated_page_photo(self, rotated_page_photo):
        quad = GeometryDetector().detect(rotated_page_photo)
        assert isinstance(quad, Quadrilateral)

        corners = quad.to_pixels(rotated_page_photo.size)
        top = np.linalg.norm(corners[1] - corners[0])
        left = np.linalg.norm(corners[3] - corners[0])
        assert top == pytest.approx(1600, rel=0.02)
        assert left == pytest.approx(2200, rel=0.02)

    def test_small_rectangle_rejected(self):
        img = np.full((800, 600, 3), 255, dtype=np.uint8)
        cv2.rectangle(img, (280, 380), (330, 430), (0, 0, 0), -1)
        detector = GeometryDetector(DetectionConfig(enable_segmentation=False))
        assert detector.detect(RasterBuffer(img)) is None

    def test_elongated_strip_rejected_by_aspect(self):
        img = np.full((800, 800, 3), 255, dtype=np.uint8)
        cv2.rectangle(img, (100, 300), (700, 400), (0, 0, 0), -1)  # aspect 1:6
        config = DetectionConfig(min_size=0.1, enable_segmentation=False)
        assert GeometryDetector(config).detect(RasterBuffer(img)) is None

    def test_position_bias_prefers_higher_candidate(self):
        img = np.full((1000, 800, 3), 255, dtype=np.uint8)
        cv2.rectangle(img, (100, 80), (400, 420), (0, 0, 0), -1)
        cv2.rectangle(img, (420, 560), (720, 900), (0, 0, 0), -1)
        config = DetectionConfig(min_size=0.2, position_bias=0.5)
        quad = GeometryDetector(config).detect(RasterBuffer(img))
        assert isinstance(quad, Quadrilateral)
        assert quad.bounding_box()[1] < 0.2

    def test_blank_image_is_a_miss(self, uniform_gray):
        assert GeometryDetector().detect(uniform_gray) is None

    def test_require_raises_on_miss(self, uniform_gray):
        with pytest.raises(DetectionMiss):
            GeometryDetector().require(uniform_gray)

    def test_opencv_error_is_a_miss(self, monkeypatch, uniform_gray):
        detector = GeometryDetector()

        def boom(_gray):
            raise cv2.error("synthetic failure")

        monkeypatch.setattr(detector, "detect_rectangle", boom)
        assert detector.detect(uniform_gray) is None


class TestSegmentation:
    def test_page_on_desk(self, page_on_desk):
        result = GeometryDetector().detect(page_on_desk)
        assert isinstance(result, SegmentationMask)

        bounds = result.largest_component_bounds()
        assert abs(bounds.x - 150) <= 4
        assert abs(bounds.y - 150) <= 4
        assert abs(bounds.right - 651) <= 4
        assert abs(bounds.bottom - 851) <= 4

    def test_needs_dark_borders(self, bottom_band_image):
        detector = GeometryDetector()
        gray = (bottom_band_image.to_gray() * 255).astype(np.uint8)
        assert detector.segment_foreground(gray, bottom_band_image.size) is None

    def test_single_row_image_has_no_center(self):
        gray = np.full((1, 40), 128, dtype=np.uint8)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert GeometryDetector().segment_foreground(gray, (40, 1)) is None

    def test_disabled(self, page_on_desk):
        config = DetectionConfig(enable_segmentation=False)
        assert GeometryDetector(config).detect(page_on_desk) is None


class TestBottomEdgeFallback:
    def test_off_by_default(self, page_bottom_line):
        assert GeometryDetector().detect(page_bottom_line) is None

    def test_finds_line(self, page_bottom_line):
        config = DetectionConfig(enable_edge_fallback=True)
        result = GeometryDetector(config).detect(page_bottom_line)
        assert isinstance(result, PageBottomEdge)
        assert 790 <= result.y <= 815
        assert result.crop_region() == Region(0, 0, 800, result.y)

    def test_short_line_ignored(self):
        img = np.full((1000, 800, 3), 255, dtype=np.uint8)
        img[800:806, 300:500] = 0  # only 25% of the width
        config = DetectionConfig(enable_edge_fallback=True)
        assert GeometryDetector(config).detect(RasterBuffer(img)) is None
