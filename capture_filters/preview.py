"""Downscaled still previews of a filter applied to a capture."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from .dispatch import FilterLike, apply_filter
from .kernels import DEFAULT_FILTER_SETTINGS, FilterSettings, is_degenerate, to_uint8

LOGGER = logging.getLogger("capture_filters")

PREVIEW_BOX: Tuple[int, int] = (640, 360)


def resize_bilinear(arr: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    height, width = arr.shape[:2]
    if width == new_width and height == new_height:
        return arr.astype(np.float32)
    x = np.linspace(0, width - 1, new_width, dtype=np.float32)
    y = np.linspace(0, height - 1, new_height, dtype=np.float32)
    x0 = np.floor(x).astype(int)
    x1 = np.clip(x0 + 1, 0, width - 1)
    y0 = np.floor(y).astype(int)
    y1 = np.clip(y0 + 1, 0, height - 1)
    x_weight = (x - x0).astype(np.float32).reshape(1, -1, 1)
    y_weight = (y - y0).astype(np.float32).reshape(-1, 1, 1)

    source = arr.astype(np.float32)
    Ia = source[np.ix_(y0, x0)]
    Ib = source[np.ix_(y0, x1)]
    Ic = source[np.ix_(y1, x0)]
    Id = source[np.ix_(y1, x1)]

    top = Ia * (1.0 - x_weight) + Ib * x_weight
    bottom = Ic * (1.0 - x_weight) + Id * x_weight
    return (top * (1.0 - y_weight) + bottom * y_weight).astype(np.float32)


def resize_array(arr: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    if arr.ndim == 2:
        resized = resize_bilinear(arr[:, :, None], new_width, new_height)
        return resized[:, :, 0]
    if arr.ndim == 3:
        return resize_bilinear(arr, new_width, new_height)
    raise ValueError("Unsupported array shape for resizing")


def fit_size(width: int, height: int, box: Tuple[int, int] = PREVIEW_BOX) -> Tuple[int, int]:
    """Largest size inside ``box`` with the aspect ratio of ``width x height``.

    Sources that already fit are returned unchanged.
    """
    box_width, box_height = box
    if box_width < 1 or box_height < 1:
        raise ValueError(f"Preview box must be positive, got {box}")
    if width <= box_width and height <= box_height:
        return width, height
    scale = min(box_width / float(width), box_height / float(height))
    return max(1, int(round(width * scale))), max(1, int(round(height * scale)))


def render_preview(
    raster: Optional[np.ndarray],
    identifier: FilterLike,
    box: Tuple[int, int] = PREVIEW_BOX,
    settings: FilterSettings = DEFAULT_FILTER_SETTINGS,
) -> Optional[np.ndarray]:
    """Apply ``identifier`` and shrink the result to fit inside ``box``."""

    if is_degenerate(raster):
        return raster
    filtered = apply_filter(raster, identifier, settings)
    height, width = filtered.shape[:2]
    new_width, new_height = fit_size(width, height, box)
    if (new_width, new_height) == (width, height):
        return filtered
    LOGGER.debug("Preview resize from %sx%s to %sx%s", width, height, new_width, new_height)
    return to_uint8(resize_array(filtered, new_width, new_height))


__all__ = [
    "PREVIEW_BOX",
    "fit_size",
    "render_preview",
    "resize_array",
    "resize_bilinear",
]
