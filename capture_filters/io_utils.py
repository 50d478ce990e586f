"""Raster decoding, staged PNG/video writes and format detection.

Key Components
--------------

StagedWrite
    Context manager that writes into a hidden temporary sibling of the
    destination and atomically renames it into place on success.

load_raster / save_png
    Pillow-backed decoding into ``uint8`` arrays and lossless RGBA PNG output.

remove_existing / copy_file
    Destination housekeeping used by export jobs before anything is written.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

LOGGER = logging.getLogger("capture_filters")

PathLike = Union[str, os.PathLike]

SUPPORTED_IMAGE_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".tif", ".tiff",
    ".webp", ".bmp", ".gif", ".ppm", ".pgm", ".tga",
}

SUPPORTED_VIDEO_EXTENSIONS = {
    ".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".flv",
}

_NATIVE_MODES = {"L", "LA", "RGB", "RGBA"}


def normalize_extension(path: PathLike) -> str:
    """Normalize a file extension to lowercase with a leading dot.

    Examples:
        >>> normalize_extension('capture.PNG')
        '.png'
        >>> normalize_extension('.MP4')
        '.mp4'
    """
    path = Path(path)
    ext = path.suffix.lower()
    if not ext:
        ext = str(path).lower()
        if not ext.startswith("."):
            ext = "." + ext
    return ext


def is_supported_image_format(path: PathLike) -> bool:
    return normalize_extension(path) in SUPPORTED_IMAGE_EXTENSIONS


def is_supported_video_format(path: PathLike) -> bool:
    return normalize_extension(path) in SUPPORTED_VIDEO_EXTENSIONS


@dataclasses.dataclass
class StagedWrite:
    """Context manager for atomic file writes using staged temporary files.

    Attributes:
        destination: Final output file path.
        suffix: Temporary file suffix (default: ".tmp").
    """

    destination: Path
    suffix: str = ".tmp"

    def __post_init__(self) -> None:
        self.destination = Path(self.destination)
        self._staged_path: Optional[Path] = None

    def _temp_path(self) -> Path:
        unique = uuid.uuid4().hex
        name = f".{self.destination.name}{self.suffix}-{unique}"
        return self.destination.parent / name

    def __enter__(self) -> Path:
        self._staged_path = self._temp_path()
        return self._staged_path

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._staged_path is None:
            return False

        staged = self._staged_path
        self._staged_path = None

        if exc_type is None:
            try:
                os.replace(staged, self.destination)
            except Exception:
                with contextlib.suppress(OSError):
                    staged.unlink()
                raise
        else:
            with contextlib.suppress(OSError):
                staged.unlink()
        return False


def load_raster(path: PathLike) -> np.ndarray:
    """Decode an image file into a ``uint8`` raster.

    L, LA, RGB and RGBA images keep their layout; palette, CMYK and
    high-bit-depth modes are converted to RGBA (when they carry alpha or
    transparency) or RGB.
    """
    with Image.open(path) as image:
        if image.mode not in _NATIVE_MODES:
            has_alpha = "A" in image.getbands() or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")
        arr = np.array(image, dtype=np.uint8)
    LOGGER.debug("Loaded %s with shape %s", path, arr.shape)
    return arr


def to_rgba(raster: np.ndarray) -> np.ndarray:
    """Expand L, LA and RGB rasters to RGBA; opaque alpha is added when missing."""

    if raster.ndim == 2:
        raster = raster[:, :, None]
    channels = raster.shape[2]
    if channels == 4:
        return np.ascontiguousarray(raster, dtype=np.uint8)

    height, width = raster.shape[:2]
    if channels == 2:
        alpha = raster[:, :, -1]
        color = raster[:, :, :-1]
    else:
        alpha = np.full((height, width), 255, dtype=np.uint8)
        color = raster
    if color.shape[2] == 1:
        color = np.repeat(color, 3, axis=2)
    elif color.shape[2] != 3:
        raise ValueError(f"Unsupported raster shape for RGBA conversion: {raster.shape}")
    return np.ascontiguousarray(np.concatenate([color, alpha[:, :, None]], axis=2), dtype=np.uint8)


def save_png(destination: PathLike, raster: np.ndarray) -> None:
    """Write ``raster`` as a lossless RGBA PNG through a staged temporary file."""

    destination = Path(destination)
    image = Image.fromarray(to_rgba(raster))
    with StagedWrite(destination) as staged_path:
        image.save(os.fspath(staged_path), format="PNG")


def remove_existing(path: PathLike) -> bool:
    """Delete a pre-existing destination file.

    Returns:
        ``True`` when nothing is left at ``path``; ``False`` when the entry
        could not be removed (for example because it is a directory).
    """
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as exc:
        LOGGER.warning("Unable to replace existing %s: %s", path, exc)
        return False
    LOGGER.debug("Removed existing %s", path)
    return True


def copy_file(source: PathLike, destination: PathLike) -> None:
    """Byte-for-byte copy of ``source`` staged next to ``destination``."""

    with StagedWrite(Path(destination)) as staged_path:
        shutil.copyfile(source, staged_path)


__all__ = [
    "StagedWrite",
    "SUPPORTED_IMAGE_EXTENSIONS",
    "SUPPORTED_VIDEO_EXTENSIONS",
    "copy_file",
    "is_supported_image_format",
    "is_supported_video_format",
    "load_raster",
    "normalize_extension",
    "remove_existing",
    "save_png",
    "to_rgba",
]
