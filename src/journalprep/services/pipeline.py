"""Journal page preprocessing pipeline.

detect -> (rectify | segment crop | edge crop | band trim) -> enhance

Only decoding can fail. Every later stage degrades gracefully: a detector
miss falls back to band trimming, a singular quadrilateral falls back to
band trimming on the original image, and a failed enhancement stage passes
its input through.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from journalprep.services.band_trimmer import BandTrimmer
from journalprep.services.document_detection import (
    GeometryDetector,
    PageBottomEdge,
    SegmentationMask,
)
from journalprep.services.enhancement import EnhancementChain
from journalprep.services.geometry import Quadrilateral
from journalprep.services.perspective_rectify import Rectifier
from journalprep.services.preprocessing_config import (
    BandTrimConfig,
    DetectionConfig,
    EnhancementParameters,
)
from journalprep.services.raster import RasterBuffer, Region, decode_image, load_image
from journalprep.utils.exceptions import RectificationSingularError, ValidationError

logger = logging.getLogger(__name__)


class PathTaken(str, Enum):
    """Which geometry branch produced the pre-enhancement image."""

    RECTANGLE_RECTIFIED = "rectangleRectified"
    SEGMENTATION_CROPPED = "segmentationCropped"
    EDGE_CROPPED = "edgeCropped"
    BAND_TRIMMED = "bandTrimmed"
    UNMODIFIED = "unmodified"


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Output of one pipeline invocation.

    Attributes:
        image: The enhanced page
        detected_quadrilateral: Quadrilateral that was rectified, if any
        cropped_region: Region (extent coordinates of the input) that was kept
            by a segmentation, edge or band crop, if any
        path_taken: Geometry branch used
        timings: Seconds spent per phase (detect, geometry, enhance, total)
        skipped_stages: Enhancement stages that failed and were passed through
    """

    image: RasterBuffer
    path_taken: PathTaken
    detected_quadrilateral: Quadrilateral | None = None
    cropped_region: Region | None = None
    timings: Mapping[str, float] = field(default_factory=dict)
    skipped_stages: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "timings", MappingProxyType(dict(self.timings)))


class PreprocessingPipeline:
    """Normalize a photographed journal page for handwriting recognition.

    Holds only frozen configuration, so one instance can serve concurrent
    invocations.
    """

    def __init__(
        self,
        detection_config: DetectionConfig | None = None,
        band_config: BandTrimConfig | None = None,
        rectifier: Rectifier | None = None,
        params: EnhancementParameters | None = None,
    ) -> None:
        self.detector = GeometryDetector(detection_config)
        self.trimmer = BandTrimmer(band_config)
        self.rectifier = rectifier or Rectifier()
        self.params = params or EnhancementParameters()

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _band_trim(self, image: RasterBuffer) -> tuple[RasterBuffer, PathTaken, Region | None]:
        trimmed = self.trimmer.trim_bottom_band(image)
        if trimmed is image:
            return image, PathTaken.UNMODIFIED, None
        return trimmed, PathTaken.BAND_TRIMMED, trimmed.extent

    def _crop(self, image: RasterBuffer, region: Region) -> RasterBuffer | None:
        try:
            return image.crop(region.translated(*image.origin))
        except ValidationError as e:
            logger.warning(f"Crop region rejected, falling back to band trim: {e}")
            return None

    def apply_geometry(
        self, image: RasterBuffer, detection: object
    ) -> tuple[RasterBuffer, PathTaken, Quadrilateral | None, Region | None]:
        """Turn a detection into a cropped or rectified image."""
        if isinstance(detection, Quadrilateral):
            try:
                rectified = self.rectifier.rectify(image, detection)
                return rectified, PathTaken.RECTANGLE_RECTIFIED, detection, None
            except RectificationSingularError as e:
                logger.warning(f"Rectification skipped: {e}")

        elif isinstance(detection, SegmentationMask):
            bounds = detection.largest_component_bounds()
            cropped = self._crop(image, bounds) if bounds is not None else None
            if cropped is not None:
                logger.info(f"Cropped to foreground {cropped.width}x{cropped.height}")
                return cropped, PathTaken.SEGMENTATION_CROPPED, None, cropped.extent

        elif isinstance(detection, PageBottomEdge):
            cropped = self._crop(image, detection.crop_region())
            if cropped is not None:
                logger.info(f"Cropped below page edge at y={detection.y}")
                return cropped, PathTaken.EDGE_CROPPED, None, cropped.extent

        trimmed, path, region = self._band_trim(image)
        return trimmed, path, None, region

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process(
        self,
        image: RasterBuffer,
        params: EnhancementParameters | None = None,
        enhance: bool = True,
    ) -> PipelineResult:
        """Run the full pipeline on a decoded image. Never raises for a valid buffer."""
        params = params or self.params
        timings: dict[str, float] = {}
        t_start = time.perf_counter()

        t0 = time.perf_counter()
        detection = self.detector.detect(image)
        timings["detect"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        geometry_image, path, quad, region = self.apply_geometry(image, detection)
        timings["geometry"] = time.perf_counter() - t0

        skipped: tuple[str, ...] = ()
        t0 = time.perf_counter()
        if enhance:
            final, report = EnhancementChain(params).run(geometry_image)
            skipped = report.skipped
        else:
            final = geometry_image if geometry_image is not image else image.copy()
        timings["enhance"] = time.perf_counter() - t0
        timings["total"] = time.perf_counter() - t_start

        logger.info(
            f"Processed {image.width}x{image.height} -> {final.width}x{final.height} "
            f"via {path.value} in {timings['total']:.2f}s"
        )
        return PipelineResult(
            image=final,
            path_taken=path,
            detected_quadrilateral=quad,
            cropped_region=region,
            timings=timings,
            skipped_stages=skipped,
        )

    def process_bytes(
        self, data: bytes, params: EnhancementParameters | None = None, enhance: bool = True
    ) -> PipelineResult:
        """Decode and process an encoded image.

        Raises:
            DecodeFailure: If the bytes are not a readable image
        """
        return self.process(decode_image(data), params, enhance=enhance)

    def process_file(
        self,
        path: str | Path,
        params: EnhancementParameters | None = None,
        enhance: bool = True,
    ) -> PipelineResult:
        """Load and process an image file.

        Raises:
            DecodeFailure: If the file is missing or not a readable image
        """
        return self.process(load_image(path), params, enhance=enhance)

    def process_many(
        self,
        images: Sequence[RasterBuffer],
        params: EnhancementParameters | None = None,
        workers: int = 4,
        enhance: bool = True,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> list[PipelineResult]:
        """Process independent images in parallel; results keep input order."""
        total = len(images)
        if total == 0:
            return []

        workers = max(1, min(workers, total))
        logger.info(f"Processing {total} image(s) with {workers} worker(s)")

        results: list[PipelineResult] = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.process, img, params, enhance) for img in images]
            for i, future in enumerate(futures):
                results.append(future.result())
                if progress_callback:
                    progress_callback(i + 1, total)
        return results
