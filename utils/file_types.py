from schemas import RawInput

UNSUPPORTED_INPUT_MESSAGE = "Unsupported file type. Please choose an image file."

# HEIC/HEIF: tagged ISO BMFF container Pillow cannot read without pillow-heif
NON_NATIVE_MEDIA_TYPES = frozenset({"image/heic", "image/heif"})
NON_NATIVE_EXTENSIONS = (".heic", ".heif")

# Declared types that say nothing about the content
GENERIC_MEDIA_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

# Encoder targets: media type -> Pillow format name
PILLOW_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

# Formats a browser decodes natively; the fast decode path is limited to these
NATIVE_DECODE_FORMATS = ("JPEG", "PNG", "WEBP", "GIF", "BMP", "ICO")


def is_non_native_format(raw: RawInput) -> bool:
    """Check whether the input needs conversion before it can be decoded.

    Browsers and file systems often leave HEIC uploads untyped, so the
    file extension is consulted when the declared type is generic.
    """
    media_type = raw.media_type.strip().lower()
    if media_type in NON_NATIVE_MEDIA_TYPES:
        return True
    if media_type in GENERIC_MEDIA_TYPES:
        return raw.name.lower().endswith(NON_NATIVE_EXTENSIONS)
    return False


def is_supported_image(raw: RawInput) -> bool:
    """First gate before processing: any image/* type or a HEIC file."""
    return raw.media_type.strip().lower().startswith("image/") or is_non_native_format(raw)
