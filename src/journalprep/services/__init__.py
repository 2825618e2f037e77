"""
JournalPrep - Services Package

Image pipeline services: detection, geometry correction and enhancement.
"""

from journalprep.services.pipeline import PathTaken, PipelineResult, PreprocessingPipeline
from journalprep.services.preprocessing_config import (
    PRESETS,
    BandTrimConfig,
    DetectionConfig,
    EnhancementParameters,
)
from journalprep.services.raster import RasterBuffer, Region, decode_image, load_image

__all__ = [
    "PRESETS",
    "BandTrimConfig",
    "DetectionConfig",
    "EnhancementParameters",
    "PathTaken",
    "PipelineResult",
    "PreprocessingPipeline",
    "RasterBuffer",
    "Region",
    "decode_image",
    "load_image",
]
