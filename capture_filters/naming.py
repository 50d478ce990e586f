"""Deterministic, collision-free output names for export batches.

Every file written by one export call shares the batch timestamp and carries
its position in the selection, so names sort in selection order and never
collide within a batch even when two identifiers produce the same slug::

    20240611_184502_00_bw.png
    20240611_184502_01_sepia.png
"""
from __future__ import annotations

import datetime
import hashlib
import re
from typing import Dict, Optional

from .dispatch import FilterId, FilterLike, identifier_token

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

FILTER_SLUGS: Dict[str, str] = {
    FilterId.NONE.value: "no_filter",
    FilterId.GRAYSCALE.value: "bw",
    FilterId.NEGATIVE.value: "negative",
    FilterId.SEPIA.value: "sepia",
    FilterId.POSTERIZE.value: "posterize",
    FilterId.SOLARIZE.value: "solarize",
    FilterId.COLD.value: "cold",
    FilterId.WARM.value: "warm",
    FilterId.VINTAGE.value: "vintage",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")

_FALLBACK_STEMS = {"png": "image", "mp4": "video"}


def filter_slug(identifier: FilterLike) -> str:
    """Return a filesystem-safe slug for ``identifier``.

    Known identifiers map to stable English slugs. Anything else is
    sanitised: whitespace runs become ``_`` and every character outside
    ``[A-Za-z0-9_]`` is dropped. When nothing survives, a SHA-1 prefix of the
    identifier keeps the slug non-empty and stable across processes.
    """
    token = identifier_token(identifier)
    known = FILTER_SLUGS.get(token.strip())
    if known is not None:
        return known

    sanitised = _UNSAFE_CHARS.sub("", "_".join(token.split()))
    if sanitised:
        return sanitised
    return hashlib.sha1(token.encode("utf-8")).hexdigest()[:12]


def batch_timestamp(now: Optional[datetime.datetime] = None) -> str:
    """Format the shared batch timestamp (``yyyyMMdd_HHmmss``)."""

    moment = now if now is not None else datetime.datetime.now()
    return moment.strftime(TIMESTAMP_FORMAT)


def output_filename(timestamp: str, index: int, slug: str, extension: str) -> str:
    """Build ``{timestamp}_{index:02d}_{slug}.{extension}``."""

    ext = extension.lstrip(".")
    stem = slug or _FALLBACK_STEMS.get(ext.lower(), "output")
    return f"{timestamp}_{index:02d}_{stem}.{ext}"


__all__ = [
    "FILTER_SLUGS",
    "TIMESTAMP_FORMAT",
    "batch_timestamp",
    "filter_slug",
    "output_filename",
]
