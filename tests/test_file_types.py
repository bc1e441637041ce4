"""Tests for input classification (HEIC detection and the image gate)."""

import pytest

from schemas import RawInput
from utils.file_types import is_non_native_format, is_supported_image


def _raw(name, media_type=""):
    return RawInput(data=b"\x00" * 8, name=name, media_type=media_type)


@pytest.mark.parametrize("media_type", ["image/heic", "image/heif", "IMAGE/HEIC"])
def test_heic_media_type_is_non_native(media_type):
    assert is_non_native_format(_raw("photo", media_type))


@pytest.mark.parametrize("name", ["IMG_0701.HEIC", "photo.heic", "photo.Heif"])
def test_heic_extension_with_missing_type(name):
    """Untyped uploads fall back to the file extension."""
    assert is_non_native_format(_raw(name, ""))
    assert is_non_native_format(_raw(name, "application/octet-stream"))


def test_heic_extension_ignored_when_type_is_specific():
    assert not is_non_native_format(_raw("photo.heic", "image/jpeg"))


def test_jpeg_is_native():
    assert not is_non_native_format(_raw("photo.jpg", "image/jpeg"))
    assert not is_non_native_format(_raw("photo.jpg", ""))


def test_supported_image_types():
    assert is_supported_image(_raw("a.png", "image/png"))
    assert is_supported_image(_raw("a.webp", "image/webp"))
    assert is_supported_image(_raw("IMG_0701.HEIC", ""))


def test_unsupported_inputs():
    assert not is_supported_image(_raw("note.txt", "text/plain"))
    assert not is_supported_image(_raw("photo.jpg", ""))
    assert not is_supported_image(_raw("archive.zip", "application/zip"))


def test_classification_is_pure():
    raw = _raw("IMG_0701.HEIC", "")
    results = {(is_supported_image(raw), is_non_native_format(raw)) for _ in range(5)}
    assert results == {(True, True)}
