"""
JournalPrep - Utils Package

Utility modules for the application.
"""

from journalprep.utils.exceptions import (
    ConfigurationError,
    DecodeFailure,
    DetectionMiss,
    EmptyForegroundMaskError,
    FilterUnavailableError,
    JournalPrepError,
    RectificationSingularError,
    ValidationError,
)

__all__ = [
    "ConfigurationError",
    "DecodeFailure",
    "DetectionMiss",
    "EmptyForegroundMaskError",
    "FilterUnavailableError",
    "JournalPrepError",
    "RectificationSingularError",
    "ValidationError",
]
