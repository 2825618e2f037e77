"""Bottom dark-band trimming.

Journal photos are often taken with the phone held over a desk, leaving a
strip of dark surface under the page. This removes that strip when no
document geometry was found.
"""

from __future__ import annotations

import logging
from dataclasses import replace

import cv2
import numpy as np

from journalprep.services.preprocessing_config import BandTrimConfig
from journalprep.services.raster import REC709_WEIGHTS, RasterBuffer, Region

logger = logging.getLogger(__name__)


class BandTrimmer:
    """Detect and crop a dark band at the bottom of an image."""

    def __init__(self, config: BandTrimConfig | None = None) -> None:
        self.config = config or BandTrimConfig()

    def _resolve(self, overrides: dict) -> BandTrimConfig:
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self.config, **changes) if changes else self.config

    def _row_luminance(self, image: RasterBuffer, scan_width: int) -> np.ndarray:
        """Mean Rec. 709 luminance of each row of a width-normalized copy."""
        target_h = max(1, round(image.height * scan_width / image.width))
        interpolation = cv2.INTER_AREA if scan_width < image.width else cv2.INTER_LINEAR
        rgb = np.ascontiguousarray(image.rgb())
        small = cv2.resize(rgb, (scan_width, target_h), interpolation=interpolation)
        luma = (small.astype(np.float32) / 255.0) @ REC709_WEIGHTS
        return luma.mean(axis=1)

    def scan_band_rows(self, image: RasterBuffer, config: BandTrimConfig) -> tuple[int, int]:
        """(dark rows, scanned image height), both at the scan resolution.

        Counts the contiguous run of dark rows starting at the bottom row,
        never looking further up than max_scan_ratio of the height.
        """
        rows = self._row_luminance(image, config.scan_width)
        target_h = len(rows)
        scan_limit = int(config.max_scan_ratio * target_h)

        dark = 0
        for i in range(scan_limit):
            if rows[target_h - 1 - i] < config.luminance_threshold:
                dark += 1
            else:
                break
        return dark, target_h

    def detect_band_height(self, image: RasterBuffer, **overrides) -> int:
        """Height in source pixels of the band that would be cropped, or 0."""
        config = self._resolve(overrides)
        dark, target_h = self.scan_band_rows(image, config)
        if dark < config.min_band_ratio * target_h:
            return 0
        return min(image.height - 1, int(dark / target_h * image.height))

    def trim_bottom_band(self, image: RasterBuffer, **overrides) -> RasterBuffer:
        """Crop the bottom dark band off *image*.

        Keyword overrides (max_scan_ratio, luminance_threshold,
        min_band_ratio, scan_width) replace the configured values for this
        call. When no band is found, the same buffer is returned.
        """
        band = self.detect_band_height(image, **overrides)
        if band <= 0:
            return image

        ox, oy = image.origin
        cropped = image.crop(Region(ox, oy, image.width, image.height - band))
        logger.info(f"Trimmed {band}px dark band from the bottom ({image.height} -> {cropped.height})")
        return cropped
