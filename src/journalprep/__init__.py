"""
JournalPrep - Python package for preparing journal page photos for OCR

Detects the page in a phone photo, crops or perspective-corrects it and
applies a deterministic enhancement chain tuned for handwriting.
"""

__version__ = "1.0.0"
__license__ = "GPL-3.0"
