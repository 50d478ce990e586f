from __future__ import annotations

import datetime
import re

import pytest
from hypothesis import given, strategies as st

try:
    from .documentation import documents
except ImportError:  # pragma: no cover - fallback for direct execution
    from tests.documentation import documents

pytest.importorskip("numpy")

from capture_filters import naming  # noqa: E402
from capture_filters.dispatch import FilterId  # noqa: E402

SAFE_SLUG = re.compile(r"[A-Za-z0-9_]+")


@pytest.mark.parametrize(
    "identifier, slug",
    [
        (FilterId.NONE, "no_filter"),
        ("grayscale", "bw"),
        ("negative", "negative"),
        ("sepia", "sepia"),
        ("posterize", "posterize"),
        ("solarize", "solarize"),
        ("cold", "cold"),
        ("warm", "warm"),
        (FilterId.VINTAGE, "vintage"),
    ],
)
def test_known_slugs(identifier, slug):
    assert naming.filter_slug(identifier) == slug


def test_unknown_identifier_is_sanitised():
    assert naming.filter_slug("  My  Filter!\tv2 ") == "My_Filter_v2"
    assert naming.filter_slug("café au lait") == "caf_au_lait"


def test_unsanitisable_identifier_falls_back_to_stable_hash():
    slug = naming.filter_slug("!!!")
    assert re.fullmatch(r"[0-9a-f]{12}", slug)
    assert naming.filter_slug("!!!") == slug
    assert naming.filter_slug("???") != slug


@documents("Every identifier maps to a non-empty, filesystem-safe slug")
@given(st.text(max_size=40))
def test_slug_is_always_safe(identifier):
    slug = naming.filter_slug(identifier)
    assert SAFE_SLUG.fullmatch(slug)


def test_batch_timestamp_format():
    moment = datetime.datetime(2024, 6, 11, 18, 45, 2)
    assert naming.batch_timestamp(moment) == "20240611_184502"


def test_batch_timestamp_defaults_to_now():
    assert re.fullmatch(r"\d{8}_\d{6}", naming.batch_timestamp())


@pytest.mark.parametrize(
    "index, slug, extension, expected",
    [
        (0, "bw", "png", "20240611_184502_00_bw.png"),
        (7, "sepia", ".mp4", "20240611_184502_07_sepia.mp4"),
        (123, "warm", "png", "20240611_184502_123_warm.png"),
        (1, "", "png", "20240611_184502_01_image.png"),
        (2, "", "mp4", "20240611_184502_02_video.mp4"),
    ],
)
def test_output_filename(index, slug, extension, expected):
    assert naming.output_filename("20240611_184502", index, slug, extension) == expected
