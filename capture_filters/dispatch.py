"""Filter identifiers and their still-image / video dispatch tables."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import numpy as np

from . import kernels
from .kernels import DEFAULT_FILTER_SETTINGS, FilterSettings

LOGGER = logging.getLogger("capture_filters")


class FilterId(str, Enum):
    """Closed set of filters a capture can be exported with."""

    NONE = "none"
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    NEGATIVE = "negative"
    POSTERIZE = "posterize"
    SOLARIZE = "solarize"
    COLD = "cold"
    WARM = "warm"
    VINTAGE = "vintage"


ALL_FILTERS: Tuple[str, ...] = tuple(member.value for member in FilterId)

FilterLike = Union[FilterId, str]

_Kernel = Callable[[np.ndarray, FilterSettings], np.ndarray]

_IMAGE_KERNELS: Dict[str, _Kernel] = {
    FilterId.GRAYSCALE.value: lambda raster, settings: kernels.grayscale(raster),
    FilterId.SEPIA.value: lambda raster, settings: kernels.sepia(raster),
    FilterId.NEGATIVE.value: lambda raster, settings: kernels.negative(raster),
    FilterId.POSTERIZE.value: lambda raster, settings: kernels.posterize(
        raster, settings.posterize_levels, dither=settings.posterize_dither
    ),
    FilterId.SOLARIZE.value: lambda raster, settings: kernels.solarize(
        raster, settings.solarize_threshold
    ),
    FilterId.COLD.value: lambda raster, settings: kernels.cold(raster, settings.cold_intensity),
    FilterId.WARM.value: lambda raster, settings: kernels.warm(raster, settings.warm_intensity),
    FilterId.VINTAGE.value: lambda raster, settings: kernels.vintage(
        raster,
        intensity=settings.vintage_intensity,
        vignette=settings.vintage_vignette,
        grain=settings.vintage_grain,
        contrast=settings.vintage_contrast,
        seed=settings.vintage_seed,
    ),
}

# FFmpeg filter graphs that approximate each still-image kernel.
VIDEO_FILTER_EXPRESSIONS: Dict[str, str] = {
    FilterId.GRAYSCALE.value: "format=gray",
    FilterId.NEGATIVE.value: "negate",
    FilterId.SEPIA.value: "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131",
    FilterId.POSTERIZE.value: "lutrgb=r='floor(val/64)*64':g='floor(val/64)*64':b='floor(val/64)*64'",
    FilterId.SOLARIZE.value: "lutyuv=y='if(lt(val,128),val,255-val)'",
    FilterId.COLD.value: "colorbalance=bs=0.35:rs=-0.25",
    FilterId.WARM.value: "colorbalance=rs=0.35:bs=-0.25",
    FilterId.VINTAGE.value: "curves=blue='0/0 0.5/0.4 1/1',vignette=PI/3",
}


def identifier_token(identifier: FilterLike) -> str:
    """Return the plain string token for an identifier or enum member."""

    if isinstance(identifier, FilterId):
        return identifier.value
    return str(identifier)


def is_known_filter(identifier: FilterLike) -> bool:
    return identifier_token(identifier) in ALL_FILTERS


def freeze_selection(identifiers: Union[FilterLike, Iterable[FilterLike], None]) -> Tuple[str, ...]:
    """Snapshot a live selection into an ordered, de-duplicated tuple.

    A single string counts as one identifier. Surrounding whitespace is
    stripped and blank tokens are dropped; first occurrence wins.
    """
    if identifiers is None:
        return ()
    if isinstance(identifiers, str):
        identifiers = [identifiers]

    snapshot: Dict[str, None] = {}
    for identifier in identifiers:
        token = identifier_token(identifier).strip()
        if token:
            snapshot.setdefault(token, None)
    return tuple(snapshot)


def cycle_filter(selection: Iterable[FilterLike], current: Optional[FilterLike]) -> Optional[str]:
    """Return the identifier following ``current`` in ``selection``, wrapping around.

    When ``current`` is not part of the selection the first entry is returned;
    an empty selection yields ``None``.
    """
    frozen = freeze_selection(selection)
    if not frozen:
        return None
    token = None if current is None else identifier_token(current).strip()
    if token not in frozen:
        return frozen[0]
    return frozen[(frozen.index(token) + 1) % len(frozen)]


def apply_filter(
    raster: Optional[np.ndarray],
    identifier: FilterLike,
    settings: FilterSettings = DEFAULT_FILTER_SETTINGS,
) -> Optional[np.ndarray]:
    """Run the kernel registered for ``identifier``.

    Args:
        raster: Source raster; ``None`` or empty rasters are returned as is.
        identifier: Filter identifier; ``none`` and unknown identifiers return
            the source verbatim.
        settings: Kernel defaults.

    Returns:
        Filtered raster, or the source itself when no kernel applies.
    """
    if kernels.is_degenerate(raster):
        return raster
    token = identifier_token(identifier)
    kernel = _IMAGE_KERNELS.get(token)
    if kernel is None:
        if token != FilterId.NONE.value:
            LOGGER.warning("Unknown filter %r; keeping the image unchanged", token)
        return raster
    return kernel(raster, settings)


def video_filter_expression(identifier: FilterLike) -> str:
    """Return the FFmpeg ``-vf`` expression for ``identifier``.

    An empty string means the video should be copied without re-encoding.
    """
    return VIDEO_FILTER_EXPRESSIONS.get(identifier_token(identifier), "")


__all__ = [
    "ALL_FILTERS",
    "FilterId",
    "FilterLike",
    "VIDEO_FILTER_EXPRESSIONS",
    "apply_filter",
    "cycle_filter",
    "freeze_selection",
    "identifier_token",
    "is_known_filter",
    "video_filter_expression",
]
