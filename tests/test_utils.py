"""Tests for formatting helpers, schemas and settings."""

import pytest
from pydantic import ValidationError

from config import Settings
from schemas import RawInput, VariantOverride, VariantSpec
from utils.format import format_bytes, format_duration


@pytest.mark.parametrize(
    "value,expected",
    [
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (1024 * 1024, "1.00 MB"),
        (5 * 1024 * 1024 + 512 * 1024, "5.50 MB"),
    ],
)
def test_format_bytes(value, expected):
    assert format_bytes(value) == expected


def test_format_duration():
    assert format_duration(12.4) == "12 ms"
    assert format_duration(1530) == "1.53 s"


def test_raw_input_size_and_path(tmp_path):
    path = tmp_path / "IMG_0701.HEIC"
    path.write_bytes(b"\x00" * 12)

    raw = RawInput.from_path(path, media_type="")
    assert raw.size == 12
    assert raw.name == "IMG_0701.HEIC"

    jpg = tmp_path / "photo.jpg"
    jpg.write_bytes(b"\xff\xd8\xff")
    assert RawInput.from_path(jpg).media_type == "image/jpeg"


@pytest.mark.parametrize("kwargs", [{"width": 0, "quality": 0.5}, {"width": 10, "quality": 0}, {"width": 10, "quality": 1.5}])
def test_variant_spec_bounds(kwargs):
    with pytest.raises(ValidationError):
        VariantSpec(**kwargs)


def test_variant_override_apply():
    spec = VariantSpec(width=1920, quality=0.8)
    assert VariantOverride().apply(spec) == spec
    assert VariantOverride(width=1280).apply(spec) == VariantSpec(width=1280, quality=0.8)


def test_settings_defaults():
    s = Settings()
    assert (s.desktop_width, s.desktop_quality) == (1920, 0.8)
    assert (s.mobile_width, s.mobile_quality) == (720, 0.7)
    assert s.history_max_entries == 20
    assert s.history_key == "background-optimizer:logs"
    assert s.history_path.endswith("history.json")


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("BACKDROP_DESKTOP_WIDTH", "2560")
    monkeypatch.setenv("BACKDROP_HISTORY_BACKEND", "memory")
    s = Settings()
    assert s.desktop_width == 2560
    assert s.history_backend == "memory"
