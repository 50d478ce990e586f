"""Pixel kernels, default filter settings, and supporting raster math.

Every kernel maps one ``uint8`` raster to a freshly allocated raster with the
same width and height. Accepted layouts are ``(H, W)`` (L), ``(H, W, 2)`` (LA),
``(H, W, 3)`` (RGB) and ``(H, W, 4)`` (RGBA); a trailing alpha plane is copied
through untouched. Channel math happens in float32 and is rounded to nearest
before being clamped back into ``[0, 255]``.
"""
from __future__ import annotations

import dataclasses
import functools
import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

LOGGER = logging.getLogger("capture_filters")

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)

SEPIA_MATRIX = np.array(
    [
        [0.393, 0.769, 0.189],
        [0.349, 0.686, 0.168],
        [0.272, 0.534, 0.131],
    ],
    dtype=np.float32,
)

# Floyd-Steinberg weights: right, below-left, below, below-right.
_DIFFUSE_RIGHT = 7.0 / 16.0
_DIFFUSE_BELOW_LEFT = 3.0 / 16.0
_DIFFUSE_BELOW = 5.0 / 16.0
_DIFFUSE_BELOW_RIGHT = 1.0 / 16.0


@dataclasses.dataclass(frozen=True)
class FilterSettings:
    """Kernel defaults used when a filter identifier is dispatched."""

    posterize_levels: int = 12
    posterize_dither: bool = False
    solarize_threshold: int = 128
    warm_intensity: float = 0.6
    cold_intensity: float = 0.6
    vintage_intensity: float = 0.8
    vintage_vignette: float = 0.6
    vintage_grain: float = 0.04
    vintage_contrast: float = 0.15
    vintage_seed: Optional[int] = None

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        def ensure_range(name: str, value: float, minimum: float, maximum: float) -> None:
            if not (minimum <= value <= maximum):
                raise ValueError(f"{name} must be between {minimum} and {maximum}, got {value}")

        ensure_range("posterize_levels", self.posterize_levels, 2, 256)
        ensure_range("solarize_threshold", self.solarize_threshold, 0, 255)
        ensure_range("warm_intensity", self.warm_intensity, 0.0, 1.0)
        ensure_range("cold_intensity", self.cold_intensity, 0.0, 1.0)
        ensure_range("vintage_intensity", self.vintage_intensity, 0.0, 1.0)
        ensure_range("vintage_vignette", self.vintage_vignette, 0.0, 1.0)
        ensure_range("vintage_grain", self.vintage_grain, 0.0, 1.0)
        ensure_range("vintage_contrast", self.vintage_contrast, -1.0, 1.0)

        if self.vintage_seed is not None and self.vintage_seed < 0:
            raise ValueError(f"vintage_seed must be a non-negative integer, got {self.vintage_seed}")


DEFAULT_FILTER_SETTINGS = FilterSettings()


def is_degenerate(raster: Optional[np.ndarray]) -> bool:
    """Return ``True`` for ``None`` or zero-sized rasters."""

    return raster is None or raster.size == 0


def _split_alpha(raster: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Return float32 colour channels ``(H, W, C)`` and the untouched alpha plane."""

    if raster.ndim == 2:
        return raster[:, :, None].astype(np.float32), None
    if raster.shape[2] in (2, 4):
        return raster[:, :, :-1].astype(np.float32), raster[:, :, -1]
    return raster.astype(np.float32), None


def _as_rgb(color: np.ndarray) -> np.ndarray:
    if color.shape[2] == 1:
        return np.repeat(color, 3, axis=2)
    return color


def to_uint8(arr: np.ndarray) -> np.ndarray:
    """Round half away from zero and clamp into the 8-bit range."""

    return np.clip(np.floor(arr + 0.5), 0.0, 255.0).astype(np.uint8)


def _assemble(color: np.ndarray, alpha: Optional[np.ndarray], *, squeeze: bool = False) -> np.ndarray:
    out = to_uint8(color)
    if alpha is not None:
        out = np.concatenate([out, alpha.astype(np.uint8, copy=False)[:, :, None]], axis=2)
    elif squeeze and out.shape[2] == 1:
        out = out[:, :, 0]
    return np.ascontiguousarray(out)


def _luma_of(color: np.ndarray) -> np.ndarray:
    if color.shape[2] == 1:
        return color[:, :, 0]
    return color[:, :, :3] @ LUMA_WEIGHTS


def luma(raster: np.ndarray) -> np.ndarray:
    """Calculate Rec. 601 luma for every pixel.

    Args:
        raster: Input raster in any supported layout.

    Returns:
        2D float32 array with the same height and width as the input.
    """
    color, _ = _split_alpha(raster)
    return _luma_of(color)


def gray_level(raster: np.ndarray) -> np.ndarray:
    """Integer grey level ``(11R + 16G + 5B) // 32`` used as the solarize key.

    Single-channel rasters are their own grey level.
    """
    color, _ = _split_alpha(raster)
    rgb = _as_rgb(color).astype(np.int32)
    return (rgb[:, :, 0] * 11 + rgb[:, :, 1] * 16 + rgb[:, :, 2] * 5) // 32


def _channel_push(rgb: np.ndarray, lift: Sequence[float], cut: Sequence[float]) -> np.ndarray:
    """Move each channel a fraction of the way toward 255 (lift) and toward 0 (cut)."""

    lift_arr = np.asarray(lift, dtype=np.float32).reshape((1, 1, 3))
    cut_arr = np.asarray(cut, dtype=np.float32).reshape((1, 1, 3))
    return rgb + (255.0 - rgb) * lift_arr - rgb * cut_arr


def grayscale(raster: np.ndarray) -> np.ndarray:
    """Convert to single-channel luma, keeping alpha as a second channel."""

    if is_degenerate(raster):
        return raster
    color, alpha = _split_alpha(raster)
    return _assemble(_luma_of(color)[:, :, None], alpha, squeeze=True)


def negative(raster: np.ndarray) -> np.ndarray:
    """Invert every colour channel (``255 - c``)."""

    if is_degenerate(raster):
        return raster
    color, alpha = _split_alpha(raster)
    return _assemble(255.0 - color, alpha, squeeze=raster.ndim == 2)


def sepia(raster: np.ndarray) -> np.ndarray:
    """Apply the classic sepia channel-mix matrix."""

    if is_degenerate(raster):
        return raster
    color, alpha = _split_alpha(raster)
    mixed = _as_rgb(color) @ SEPIA_MATRIX.T
    return _assemble(mixed, alpha)


@functools.lru_cache(maxsize=16)
def _posterize_lut_cached(levels: int) -> np.ndarray:
    steps = levels - 1
    values = np.arange(256, dtype=np.float64)
    index = np.floor(values * steps / 255.0 + 0.5)
    quantised = np.floor(index * 255.0 / steps + 0.5)
    lut = np.clip(quantised, 0, 255).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def posterize_lut(levels: int = 12) -> np.ndarray:
    """Build the 256-entry quantisation table for ``levels`` output levels.

    Levels below two are coerced to two. The cached table is read-only; a
    writable copy is returned.
    """
    return _posterize_lut_cached(max(2, int(levels))).copy()


def _diffuse_row(values: List[float], table: List[int]) -> Tuple[List[int], List[int]]:
    """Quantise one channel of one row, carrying error to the right neighbour."""

    quantised: List[int] = []
    errors: List[int] = []
    carry = 0.0
    for value in values:
        old = min(max(math.floor(value + carry + 0.5), 0), 255)
        new = table[old]
        quantised.append(new)
        errors.append(old - new)
        carry = (old - new) * _DIFFUSE_RIGHT
    return quantised, errors


def _error_diffuse(color: np.ndarray, lut: np.ndarray) -> np.ndarray:
    # Only the rightward carry is sequential; the row below is updated in bulk.
    buffer = color.astype(np.float64)
    out = np.empty_like(buffer)
    errors = np.empty_like(buffer[0])
    height, _, channels = buffer.shape
    table = lut.tolist()
    for y in range(height):
        for c in range(channels):
            quantised, row_errors = _diffuse_row(buffer[y, :, c].tolist(), table)
            out[y, :, c] = quantised
            errors[:, c] = row_errors
        if y + 1 < height:
            below = buffer[y + 1]
            below[:-1] += errors[1:] * _DIFFUSE_BELOW_LEFT
            below += errors * _DIFFUSE_BELOW
            below[1:] += errors[:-1] * _DIFFUSE_BELOW_RIGHT
    return out.astype(np.float32)


def posterize(raster: np.ndarray, levels: int = 12, dither: bool = False) -> np.ndarray:
    """Quantise each colour channel to ``levels`` evenly spaced values.

    Args:
        raster: Input raster in any supported layout.
        levels: Number of output levels per channel (coerced to at least 2).
        dither: Diffuse the quantisation error with Floyd-Steinberg weights,
            scanning pixels in row-major order.

    Returns:
        Posterized raster with the same layout as the input.
    """
    if is_degenerate(raster):
        return raster
    lut = _posterize_lut_cached(max(2, int(levels)))
    color, alpha = _split_alpha(raster)
    LOGGER.debug("Posterize levels=%s dither=%s", levels, dither)
    if dither:
        quantised = _error_diffuse(color, lut)
    else:
        quantised = lut[color.astype(np.intp)].astype(np.float32)
    return _assemble(quantised, alpha, squeeze=raster.ndim == 2)


def solarize(raster: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Hard-invert pixels brighter than ``threshold``.

    Pixels whose :func:`gray_level` exceeds the threshold become ``255 - 3c``
    per channel (values far below zero clamp to black); the rest are untouched.
    """
    if is_degenerate(raster):
        return raster
    color, alpha = _split_alpha(raster)
    bright = gray_level(raster) > threshold
    result = np.where(bright[:, :, None], 255.0 - 3.0 * color, color)
    return _assemble(result, alpha, squeeze=raster.ndim == 2)


def warm(raster: np.ndarray, intensity: float = 0.6) -> np.ndarray:
    """Push red and green toward 255 and pull blue toward 0."""

    if is_degenerate(raster):
        return raster
    if intensity <= 0:
        return raster.copy()
    intensity = min(float(intensity), 1.0)
    color, alpha = _split_alpha(raster)
    pushed = _channel_push(
        _as_rgb(color),
        lift=(0.45 * intensity, 0.20 * intensity, 0.0),
        cut=(0.0, 0.0, 0.25 * intensity),
    )
    return _assemble(pushed, alpha)


def cold(raster: np.ndarray, intensity: float = 0.6) -> np.ndarray:
    """Push blue and green toward 255 and pull red toward 0."""

    if is_degenerate(raster):
        return raster
    if intensity <= 0:
        return raster.copy()
    intensity = min(float(intensity), 1.0)
    color, alpha = _split_alpha(raster)
    pushed = _channel_push(
        _as_rgb(color),
        lift=(0.0, 0.12 * intensity, 0.45 * intensity),
        cut=(0.30 * intensity, 0.0, 0.0),
    )
    return _assemble(pushed, alpha)


def radial_falloff(height: int, width: int, amount: float) -> np.ndarray:
    """Return the ``1 - amount * (d / dmax)^2`` vignette mask, floored at zero."""

    cx = width * 0.5
    cy = height * 0.5
    max_dist = math.hypot(cx, cy)
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32)
    dist = np.hypot(xs - cx, ys - cy) / max_dist
    return np.maximum(0.0, 1.0 - amount * dist * dist).astype(np.float32)


def vintage(
    raster: np.ndarray,
    intensity: float = 0.8,
    vignette: float = 0.6,
    grain: float = 0.04,
    contrast: float = 0.15,
    seed: Optional[int] = None,
) -> np.ndarray:
    """Composite film look: desaturate, warm, contrast, vignette, grain.

    The five effects are applied in that order before the output clamp. Grain
    comes from a freshly seeded generator on every call, so the output is not
    reproducible unless ``seed`` is given.

    Args:
        raster: Input raster in any supported layout.
        intensity: Overall strength of the desaturation, tone shift and vignette.
        vignette: Corner darkening amount, scaled by ``intensity``.
        grain: Uniform noise amplitude as a fraction of the full 8-bit range.
        contrast: Contrast stretch around the 128 midpoint.
        seed: Optional seed for the grain generator.

    Returns:
        RGB or RGBA raster with the same height and width as the input.
    """
    if is_degenerate(raster):
        return raster
    if intensity <= 0 and vignette <= 0 and grain <= 0 and abs(contrast) < 1e-6:
        return raster.copy()

    color, alpha = _split_alpha(raster)
    rgb = _as_rgb(color)
    height, width = rgb.shape[:2]

    tone_amount = 0.25 * intensity
    desat_amount = 0.25 * intensity
    vignette_amount = vignette * intensity
    LOGGER.debug(
        "Vintage intensity=%s vignette=%s grain=%s contrast=%s seed=%s",
        intensity,
        vignette,
        grain,
        contrast,
        seed,
    )

    lum = _luma_of(rgb)[:, :, None]
    rgb = rgb * (1.0 - desat_amount) + lum * desat_amount
    rgb = _channel_push(
        rgb,
        lift=(0.30 * tone_amount, 0.12 * tone_amount, 0.0),
        cut=(0.0, 0.0, 0.20 * tone_amount),
    )
    rgb = (rgb - 128.0) * (1.0 + contrast * 0.6) + 128.0

    if vignette_amount > 0:
        rgb = rgb * radial_falloff(height, width, vignette_amount)[:, :, None]

    if grain > 0:
        rng = np.random.default_rng(seed)
        noise = rng.uniform(-1.0, 1.0, size=(height, width)).astype(np.float32) * (grain * 255.0)
        rgb = rgb + noise[:, :, None]

    return _assemble(rgb, alpha)


__all__ = [
    "DEFAULT_FILTER_SETTINGS",
    "FilterSettings",
    "LUMA_WEIGHTS",
    "SEPIA_MATRIX",
    "cold",
    "gray_level",
    "grayscale",
    "is_degenerate",
    "luma",
    "negative",
    "posterize",
    "posterize_lut",
    "radial_falloff",
    "sepia",
    "solarize",
    "to_uint8",
    "vintage",
    "warm",
]
