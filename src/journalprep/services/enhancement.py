"""
Handwriting enhancement chain.

An ordered list of stages, each an Operator paired with its own frozen
parameter record. Stages operate on 8-bit RGB; alpha is split off before a
stage runs and reattached afterwards. A stage that fails is logged and
skipped, so the chain always returns an image.

Stage order:
    upscale -> posterize -> color controls -> exposure -> luminance sharpen
    -> unsharp mask -> noise reduction -> tone curve -> gamma
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import cv2
import numpy as np
from scipy.interpolate import PchipInterpolator

from journalprep.services.preprocessing_config import EnhancementParameters
from journalprep.services.raster import REC709_WEIGHTS, RasterBuffer
from journalprep.utils.exceptions import ConfigurationError, FilterUnavailableError

logger = logging.getLogger(__name__)


# ============================================================================
# Parameter records
# ============================================================================


@dataclass(frozen=True)
class UpscaleParams:
    min_dimension: int


@dataclass(frozen=True)
class PosterizeParams:
    levels: int


@dataclass(frozen=True)
class ColorControlsParams:
    saturation: float
    brightness: float
    contrast: float


@dataclass(frozen=True)
class ExposureParams:
    ev: float


@dataclass(frozen=True)
class SharpenLuminanceParams:
    sharpness: float
    radius: float


@dataclass(frozen=True)
class UnsharpMaskParams:
    radius: float
    intensity: float


@dataclass(frozen=True)
class NoiseReductionParams:
    level: float
    sharpness: float


@dataclass(frozen=True)
class ToneCurveParams:
    points: tuple[tuple[float, float], ...]


@dataclass(frozen=True)
class GammaParams:
    power: float


class Operator(str, Enum):
    """Image operations available to the enhancement chain."""

    UPSCALE = "upscale"
    POSTERIZE = "posterize"
    COLOR_CONTROLS = "color_controls"
    EXPOSURE = "exposure"
    SHARPEN_LUMINANCE = "sharpen_luminance"
    UNSHARP_MASK = "unsharp_mask"
    NOISE_REDUCTION = "noise_reduction"
    TONE_CURVE = "tone_curve"
    GAMMA = "gamma"

    @property
    def params_type(self) -> type:
        return _PARAM_TYPES[self]


_PARAM_TYPES: dict[Operator, type] = {
    Operator.UPSCALE: UpscaleParams,
    Operator.POSTERIZE: PosterizeParams,
    Operator.COLOR_CONTROLS: ColorControlsParams,
    Operator.EXPOSURE: ExposureParams,
    Operator.SHARPEN_LUMINANCE: SharpenLuminanceParams,
    Operator.UNSHARP_MASK: UnsharpMaskParams,
    Operator.NOISE_REDUCTION: NoiseReductionParams,
    Operator.TONE_CURVE: ToneCurveParams,
    Operator.GAMMA: GammaParams,
}


@dataclass(frozen=True)
class Stage:
    """One step of the chain.

    Raises:
        ConfigurationError: If params is not the record type of operator
    """

    operator: Operator
    params: object

    def __post_init__(self) -> None:
        expected = self.operator.params_type
        if not isinstance(self.params, expected):
            raise ConfigurationError(
                self.operator.value,
                f"expected {expected.__name__}, got {type(self.params).__name__}",
            )


# ============================================================================
# Helpers
# ============================================================================


def _to_float(rgb: np.ndarray) -> np.ndarray:
    return rgb.astype(np.float32) / 255.0


def _to_uint8(img: np.ndarray) -> np.ndarray:
    return np.rint(np.clip(img, 0.0, 1.0) * 255.0).astype(np.uint8)


def _luma(img: np.ndarray) -> np.ndarray:
    return img @ REC709_WEIGHTS


def _lut_from_function(fn: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
    x = np.arange(256, dtype=np.float64) / 255.0
    return np.rint(np.clip(fn(x), 0.0, 1.0) * 255.0).astype(np.uint8)


# ============================================================================
# Operators
#
# Each takes and returns a uint8 RGB array of shape (H, W, 3).
# ============================================================================


def upscale(rgb: np.ndarray, params: UpscaleParams) -> np.ndarray:
    """Scale up so the shorter side equals min_dimension exactly."""
    h, w = rgb.shape[:2]
    shorter = min(w, h)
    if shorter >= params.min_dimension:
        return rgb

    scale = params.min_dimension / shorter
    if w <= h:
        new_w, new_h = params.min_dimension, round(h * scale)
    else:
        new_w, new_h = round(w * scale), params.min_dimension
    logger.debug(f"Upscaling {w}x{h} -> {new_w}x{new_h}")
    return cv2.resize(rgb, (new_w, new_h), interpolation=cv2.INTER_LANCZOS4)


def posterize(rgb: np.ndarray, params: PosterizeParams) -> np.ndarray:
    """Quantize every channel to `levels` evenly spaced values."""
    steps = params.levels - 1
    if steps < 1:
        raise FilterUnavailableError(Operator.POSTERIZE.value, "needs at least 2 levels")
    img = _to_float(rgb)
    return _to_uint8(np.rint(img * steps) / steps)


def color_controls(rgb: np.ndarray, params: ColorControlsParams) -> np.ndarray:
    """Saturation, then brightness offset, then contrast around the midpoint."""
    img = _to_float(rgb)
    gray = _luma(img)[:, :, None]
    img = gray + (img - gray) * params.saturation
    img = img + params.brightness
    img = (img - 0.5) * params.contrast + 0.5
    return _to_uint8(img)


def exposure(rgb: np.ndarray, params: ExposureParams) -> np.ndarray:
    factor = 2.0**params.ev
    lut = _lut_from_function(lambda x: x * factor)
    return cv2.LUT(rgb, lut)


def sharpen_luminance(rgb: np.ndarray, params: SharpenLuminanceParams) -> np.ndarray:
    """Sharpen luma only; the luma delta is added to each channel to keep hue."""
    img = _to_float(rgb)
    y = _luma(img)
    blurred = cv2.GaussianBlur(y, (0, 0), sigmaX=params.radius)
    delta = params.sharpness * (y - blurred)
    return _to_uint8(img + delta[:, :, None])


def unsharp_mask(rgb: np.ndarray, params: UnsharpMaskParams) -> np.ndarray:
    # Unsharp mask: original + amount * (original - blurred)
    img = _to_float(rgb)
    blurred = cv2.GaussianBlur(img, (0, 0), sigmaX=params.radius)
    return _to_uint8(img + params.intensity * (img - blurred))


def noise_reduction(rgb: np.ndarray, params: NoiseReductionParams) -> np.ndarray:
    """Drop low-amplitude detail and boost the rest.

    The detail layer is the difference to a small Gaussian blur; anything
    below `level` counts as sensor noise.
    """
    img = _to_float(rgb)
    blurred = cv2.GaussianBlur(img, (0, 0), sigmaX=1.0)
    detail = img - blurred
    kept = np.where(np.abs(detail) < params.level, 0.0, detail * (1.0 + params.sharpness))
    return _to_uint8(blurred + kept)


def tone_curve(rgb: np.ndarray, params: ToneCurveParams) -> np.ndarray:
    """Monotone cubic curve through the control points, applied as a LUT."""
    xs = np.array([p[0] for p in params.points], dtype=np.float64)
    ys = np.array([p[1] for p in params.points], dtype=np.float64)
    try:
        curve = PchipInterpolator(xs, ys, extrapolate=True)
    except ValueError as e:
        raise FilterUnavailableError(Operator.TONE_CURVE.value, str(e)) from e
    return cv2.LUT(rgb, _lut_from_function(curve))


def gamma(rgb: np.ndarray, params: GammaParams) -> np.ndarray:
    if params.power <= 0:
        raise FilterUnavailableError(Operator.GAMMA.value, "power must be positive")
    lut = _lut_from_function(lambda x: np.power(x, params.power))
    return cv2.LUT(rgb, lut)


_OPERATIONS: dict[Operator, Callable[[np.ndarray, object], np.ndarray]] = {
    Operator.UPSCALE: upscale,
    Operator.POSTERIZE: posterize,
    Operator.COLOR_CONTROLS: color_controls,
    Operator.EXPOSURE: exposure,
    Operator.SHARPEN_LUMINANCE: sharpen_luminance,
    Operator.UNSHARP_MASK: unsharp_mask,
    Operator.NOISE_REDUCTION: noise_reduction,
    Operator.TONE_CURVE: tone_curve,
    Operator.GAMMA: gamma,
}


def apply_stage(stage: Stage, image: RasterBuffer) -> RasterBuffer:
    """Run a single stage on *image*, carrying alpha through.

    Raises:
        FilterUnavailableError: If the operator cannot produce a result
        cv2.error: On OpenCV failures
    """
    operation = _OPERATIONS.get(stage.operator)
    if operation is None:
        raise FilterUnavailableError(stage.operator.value, "no implementation registered")

    rgb = np.ascontiguousarray(image.rgb())
    with np.errstate(invalid="raise", divide="raise"):
        out = operation(rgb, stage.params)

    if out.ndim != 3 or out.shape[2] != 3 or out.dtype != np.uint8:
        raise FilterUnavailableError(stage.operator.value, f"unexpected output {out.shape} {out.dtype}")
    if np.shares_memory(out, image.pixels):
        out = out.copy()

    alpha = image.alpha()
    if alpha is not None:
        if alpha.shape != out.shape[:2]:
            alpha = cv2.resize(alpha, (out.shape[1], out.shape[0]), interpolation=cv2.INTER_LANCZOS4)
        out = np.dstack([out, alpha])

    return image.with_pixels(out)


def build_stages(params: EnhancementParameters) -> list[Stage]:
    """The fixed stage order, parameterized by *params*."""
    return [
        Stage(Operator.UPSCALE, UpscaleParams(params.min_dimension)),
        Stage(Operator.POSTERIZE, PosterizeParams(params.posterize_levels)),
        Stage(
            Operator.COLOR_CONTROLS,
            ColorControlsParams(
                saturation=params.saturation,
                brightness=params.brightness,
                contrast=params.contrast_level,
            ),
        ),
        Stage(Operator.EXPOSURE, ExposureParams(params.exposure_ev)),
        Stage(
            Operator.SHARPEN_LUMINANCE,
            SharpenLuminanceParams(params.sharpen_strength, params.sharpen_radius),
        ),
        Stage(
            Operator.UNSHARP_MASK,
            UnsharpMaskParams(params.unsharp_radius, params.unsharp_intensity),
        ),
        Stage(
            Operator.NOISE_REDUCTION,
            NoiseReductionParams(params.denoise_level, params.denoise_sharpness),
        ),
        Stage(Operator.TONE_CURVE, ToneCurveParams(params.tone_curve)),
        Stage(Operator.GAMMA, GammaParams(params.gamma_level)),
    ]


@dataclass(frozen=True)
class EnhancementReport:
    """Which stages ran and which were passed through after failing."""

    applied: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", MappingProxyType(dict(self.errors)))


class EnhancementChain:
    """Deterministic handwriting enhancement."""

    def __init__(self, params: EnhancementParameters | None = None) -> None:
        self.params = params or EnhancementParameters()

    def run(
        self, image: RasterBuffer, params: EnhancementParameters | None = None
    ) -> tuple[RasterBuffer, EnhancementReport]:
        """Apply every stage in order and report skipped ones."""
        stages = build_stages(params or self.params)
        applied: list[str] = []
        skipped: list[str] = []
        errors: dict[str, str] = {}

        current = image
        for stage in stages:
            name = stage.operator.value
            try:
                current = apply_stage(stage, current)
                applied.append(name)
            except (cv2.error, FilterUnavailableError, FloatingPointError, ValueError) as e:
                logger.warning(f"Enhancement stage '{name}' failed, passing image through: {e}")
                skipped.append(name)
                errors[name] = str(e)

        return current, EnhancementReport(tuple(applied), tuple(skipped), errors)

    def enhance(
        self, image: RasterBuffer, params: EnhancementParameters | None = None
    ) -> RasterBuffer:
        result, _ = self.run(image, params)
        return result
