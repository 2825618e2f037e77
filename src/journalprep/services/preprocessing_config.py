"""Image preprocessing configuration.

All pipeline tuning is carried by frozen dataclasses that are passed into
each call; nothing here is mutated at runtime.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from numbers import Real
from typing import Any

from journalprep.utils.exceptions import ConfigurationError

# === Enhancement defaults ===
DEFAULT_POSTERIZE_LEVELS = 4
DEFAULT_CONTRAST_LEVEL = 2.0
DEFAULT_GAMMA_LEVEL = 0.4
DEFAULT_MIN_DIMENSION = 1500
DEFAULT_TONE_CURVE: tuple[tuple[float, float], ...] = (
    (0.0, 0.0),
    (0.25, 0.05),
    (0.5, 0.5),
    (0.75, 0.95),
    (1.0, 1.0),
)

POSTERIZE_RANGE = (2, 8)
CONTRAST_RANGE = (1.5, 2.5)
GAMMA_RANGE = (0.3, 0.6)

DEFAULT_PRESET = "strong"


@dataclass(frozen=True)
class EnhancementParameters:
    """Parameters for the enhancement chain.

    Attributes:
        posterize_levels: Quantization steps per colour channel (2-8)
        contrast_level: Contrast stretch around the midpoint (1.5-2.5)
        gamma_level: Final power-law exponent (0.3-0.6, lower = more bitonal)
        min_dimension: Upscale floor for the shorter image side, in pixels
        brightness: Offset added by the colour-controls stage
        saturation: Saturation factor of the colour-controls stage
        exposure_ev: Exposure lift in EV stops
        sharpen_strength: Luminance sharpening amount
        sharpen_radius: Gaussian sigma of the luminance sharpen
        unsharp_radius: Gaussian sigma of the unsharp mask
        unsharp_intensity: Unsharp mask amount
        denoise_level: Detail amplitude treated as noise (0-1 scale)
        denoise_sharpness: Extra gain applied to detail above the noise level
        tone_curve: Control points of the tone curve, x strictly increasing
    """

    posterize_levels: int = DEFAULT_POSTERIZE_LEVELS
    contrast_level: float = DEFAULT_CONTRAST_LEVEL
    gamma_level: float = DEFAULT_GAMMA_LEVEL

    min_dimension: int = DEFAULT_MIN_DIMENSION
    brightness: float = 0.2
    saturation: float = 1.5
    exposure_ev: float = 0.3
    sharpen_strength: float = 1.2
    sharpen_radius: float = 1.69
    unsharp_radius: float = 2.5
    unsharp_intensity: float = 0.5
    denoise_level: float = 0.01
    denoise_sharpness: float = 0.6
    tone_curve: tuple[tuple[float, float], ...] = field(default=DEFAULT_TONE_CURVE)

    def __post_init__(self) -> None:
        if isinstance(self.posterize_levels, bool) or not isinstance(self.posterize_levels, int):
            raise ConfigurationError("posterize_levels", "must be an integer")
        _check_field_types(self, skip=("posterize_levels", "tone_curve"))
        _check_range("posterize_levels", self.posterize_levels, POSTERIZE_RANGE)
        _check_range("contrast_level", self.contrast_level, CONTRAST_RANGE)
        _check_range("gamma_level", self.gamma_level, GAMMA_RANGE)
        if self.min_dimension <= 0:
            raise ConfigurationError("min_dimension", "must be positive")
        if self.saturation < 0:
            raise ConfigurationError("saturation", "must not be negative")
        if self.sharpen_radius <= 0 or self.unsharp_radius <= 0:
            raise ConfigurationError("radius", "blur radii must be positive")
        if not 0.0 <= self.denoise_level <= 1.0:
            raise ConfigurationError("denoise_level", "must be within [0, 1]")

        try:
            curve = tuple((float(x), float(y)) for x, y in self.tone_curve)
        except (TypeError, ValueError):
            raise ConfigurationError("tone_curve", "expected a list of [x, y] pairs") from None
        if len(curve) < 2:
            raise ConfigurationError("tone_curve", "needs at least two control points")
        xs = [x for x, _ in curve]
        if any(b <= a for a, b in zip(xs, xs[1:])):
            raise ConfigurationError("tone_curve", "x values must be strictly increasing")
        if any(not (0.0 <= v <= 1.0) for point in curve for v in point):
            raise ConfigurationError("tone_curve", "control points must lie in [0, 1]")
        object.__setattr__(self, "tone_curve", curve)

    @property
    def total_colors(self) -> int:
        """Upper bound on distinct colours after posterization."""
        return self.posterize_levels**3

    @classmethod
    def from_preset(cls, name: str) -> EnhancementParameters:
        """Build parameters from a named preset (see PRESETS)."""
        try:
            preset = PRESETS[name]
        except (KeyError, TypeError):
            raise ConfigurationError(
                "preset", f"unknown preset '{name}' (choose from {', '.join(PRESETS)})"
            ) from None
        return preset

    def with_overrides(self, **overrides: Any) -> EnhancementParameters:
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(", ".join(sorted(unknown)), "unknown enhancement option")
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EnhancementParameters:
        """Build from a settings mapping; an optional 'preset' key is the base."""
        data = dict(data)
        preset = data.pop("preset", None)
        base = cls.from_preset(preset) if preset else cls()
        return base.with_overrides(**data)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["tone_curve"] = [list(p) for p in self.tone_curve]
        return d


def _check_range(name: str, value: float, bounds: tuple[float, float]) -> None:
    lo, hi = bounds
    if not lo <= value <= hi:
        raise ConfigurationError(name, f"{value} is outside the valid range {lo}-{hi}")


def _check_field_types(config: Any, skip: tuple[str, ...] = ()) -> None:
    """Flags must be booleans and every other field a number."""
    for f in fields(config):
        if f.name in skip:
            continue
        value = getattr(config, f.name)
        if isinstance(f.default, bool):
            if not isinstance(value, bool):
                raise ConfigurationError(f.name, f"must be true or false, got {value!r}")
        elif isinstance(value, bool) or not isinstance(value, Real):
            raise ConfigurationError(f.name, f"must be a number, got {value!r}")



# Tuning presets for handwriting: fewer levels and lower gamma give a harsher,
# more bitonal page; more levels keep highlighter and ink colours apart.
PRESETS: dict[str, EnhancementParameters] = {
    "extreme": EnhancementParameters(posterize_levels=3, contrast_level=2.5, gamma_level=0.3),
    "strong": EnhancementParameters(posterize_levels=4, contrast_level=2.0, gamma_level=0.4),
    "moderate": EnhancementParameters(posterize_levels=6, contrast_level=1.8, gamma_level=0.5),
    "subtle": EnhancementParameters(posterize_levels=8, contrast_level=1.5, gamma_level=0.6),
}


@dataclass(frozen=True)
class DetectionConfig:
    """Thresholds for document geometry detection.

    Aspect ratio is measured as short side / long side, so it lies in (0, 1]
    regardless of page orientation. Minimum size is the shorter candidate side
    relative to the shorter image dimension.
    """

    # === Rectangle candidates ===
    min_aspect: float = 0.2
    max_aspect: float = 1.0
    min_size: float = 0.2
    min_confidence: float = 0.3
    quadrature_tolerance: float = 20.0  # degrees
    max_candidates: int = 10
    position_bias: float = 0.05  # K in: score = area - (1 - max_y) * K
    detection_max_side: int = 1024
    detection_contrast: float = 1.2

    # === Foreground segmentation ===
    enable_segmentation: bool = True
    dark_border_delta: float = 30.0  # 0-255 gray levels
    min_dark_borders: int = 3
    min_segment_area: float = 0.15

    # === Page-bottom edge fallback ===
    enable_edge_fallback: bool = False
    edge_min_width: float = 0.6
    edge_max_height: float = 0.06
    edge_max_bottom: float = 0.8  # lower bound of the contour, bottom-left origin

    def __post_init__(self) -> None:
        _check_field_types(self)
        if not 0.0 < self.min_aspect <= self.max_aspect:
            raise ConfigurationError("min_aspect", "must be positive and <= max_aspect")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigurationError("min_confidence", "must be within [0, 1]")
        if not 0.0 < self.min_size <= 1.0:
            raise ConfigurationError("min_size", "must be within (0, 1]")
        if not 0.0 < self.quadrature_tolerance <= 90.0:
            raise ConfigurationError("quadrature_tolerance", "must be within (0, 90] degrees")
        if self.max_candidates < 1:
            raise ConfigurationError("max_candidates", "must be at least 1")
        if self.detection_max_side < 64:
            raise ConfigurationError("detection_max_side", "must be at least 64 pixels")
        if not 0 <= self.min_dark_borders <= 4:
            raise ConfigurationError("min_dark_borders", "must be between 0 and 4")

    @classmethod
    def for_mode(cls, mode: str, **overrides: Any) -> DetectionConfig:
        try:
            base = DETECTION_MODES[mode]
        except KeyError:
            raise ConfigurationError(
                "detection_mode",
                f"unknown mode '{mode}' (choose from {', '.join(DETECTION_MODES)})",
            ) from None
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(base, **changes) if changes else base


DETECTION_MODES: dict[str, DetectionConfig] = {
    "strict": DetectionConfig(),
    "lenient": DetectionConfig(
        min_aspect=0.3,
        max_aspect=1.0,
        min_size=0.15,
        min_confidence=0.6,
        quadrature_tolerance=45.0,
    ),
}


@dataclass(frozen=True)
class BandTrimConfig:
    """Bottom dark-band trimming thresholds.

    Attributes:
        max_scan_ratio: Fraction of the height scanned upward from the bottom
        luminance_threshold: Mean row luminance (0-1) below which a row is dark
        min_band_ratio: Minimum band height, as a fraction of the height, to crop
        scan_width: Width the image is resized to before scanning
    """

    max_scan_ratio: float = 0.3
    luminance_threshold: float = 0.12
    min_band_ratio: float = 0.03
    scan_width: int = 512

    def __post_init__(self) -> None:
        _check_field_types(self)
        if not 0.0 < self.max_scan_ratio <= 1.0:
            raise ConfigurationError("max_scan_ratio", "must be within (0, 1]")
        if not 0.0 <= self.luminance_threshold <= 1.0:
            raise ConfigurationError("luminance_threshold", "must be within [0, 1]")
        if not 0.0 <= self.min_band_ratio <= self.max_scan_ratio:
            raise ConfigurationError("min_band_ratio", "must be within [0, max_scan_ratio]")
        if self.scan_width < 8:
            raise ConfigurationError("scan_width", "must be at least 8 pixels")
