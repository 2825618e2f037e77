"""
JournalPrep - Custom Exceptions Module

This module defines custom exception classes for the image pipeline.
Only DecodeFailure is meant to reach callers of the pipeline; the others
are raised by individual components and recovered by their callers.
"""


class JournalPrepError(Exception):
    """Base exception for all JournalPrep errors.

    All custom exceptions should inherit from this class to allow
    catching any JournalPrep-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class DecodeFailure(JournalPrepError):
    """Raised when input bytes cannot be interpreted as an image."""

    def __init__(self, source: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            source: File path or a short description of the byte source
            reason: Optional reason reported by the decoder
        """
        self.source = source
        self.reason = reason
        msg = f"Could not open image: {source}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg, details=f"source={source}")


class DetectionMiss(JournalPrepError):
    """Raised on request when no document region could be found."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        super().__init__("No document region detected", details=f"size={width}x{height}")


class RectificationSingularError(JournalPrepError):
    """Raised when a quadrilateral is too degenerate to rectify."""

    def __init__(self, reason: str, area_px: float | None = None) -> None:
        """Initialize the exception.

        Args:
            reason: Why the perspective transform is singular
            area_px: Optional quadrilateral area in pixels
        """
        self.reason = reason
        self.area_px = area_px
        details = None
        if area_px is not None:
            details = f"area={area_px:.1f}px"
        super().__init__(f"Cannot rectify quadrilateral: {reason}", details=details)


class FilterUnavailableError(JournalPrepError):
    """Raised when an enhancement operator cannot be applied."""

    def __init__(self, operator: str, reason: str | None = None) -> None:
        self.operator = operator
        self.reason = reason
        msg = f"Enhancement operator '{operator}' unavailable"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EmptyForegroundMaskError(JournalPrepError):
    """Raised when a segmentation mask has no foreground pixels."""

    def __init__(self, mask_width: int, mask_height: int) -> None:
        self.mask_width = mask_width
        self.mask_height = mask_height
        super().__init__(
            "Segmentation mask has no foreground",
            details=f"mask={mask_width}x{mask_height}",
        )


class ConfigurationError(JournalPrepError):
    """Raised when there's a configuration-related error."""

    def __init__(self, setting_name: str | None = None, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            setting_name: Optional name of the problematic setting
            reason: Optional reason for the error
        """
        self.setting_name = setting_name
        self.reason = reason

        if setting_name:
            msg = f"Configuration error for '{setting_name}'"
        else:
            msg = "Configuration error"

        if reason:
            msg += f": {reason}"

        super().__init__(msg)


class ValidationError(JournalPrepError):
    """Raised when input validation fails."""

    def __init__(
        self,
        field: str,
        value: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            field: Name of the field that failed validation
            value: Optional value that failed validation
            reason: Optional reason for the validation failure
        """
        self.field = field
        self.value = value
        self.reason = reason

        msg = f"Validation error for '{field}'"
        if reason:
            msg += f": {reason}"

        details = f"value={value}" if value is not None else None
        super().__init__(msg, details=details)


# Exception hierarchy summary:
# JournalPrepError (base)
# ├── DecodeFailure
# ├── DetectionMiss
# ├── RectificationSingularError
# ├── FilterUnavailableError
# ├── EmptyForegroundMaskError
# ├── ConfigurationError
# └── ValidationError
