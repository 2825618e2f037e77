"""
JournalPrep - Configuration Module

This module contains application constants, paths and logging settings.
Pipeline tuning lives in journalprep.services.preprocessing_config.
"""

import logging
import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "JournalPrep"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "Normalize photographed journal pages for handwriting OCR"


# ============================================================================
# Configuration Directory
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/journalprep")
CONFIG_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")


# ============================================================================
# Input / Output
# ============================================================================

SUPPORTED_IMAGE_SUFFIXES: Final[frozenset[str]] = frozenset(
    {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}
)
DEFAULT_OUTPUT_SUFFIX: Final[str] = "prepared"


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: int = logging.INFO
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT: Final[str] = "%H:%M:%S"
LOGGER_NAME: Final[str] = "journalprep"
