import asyncio
import io
from dataclasses import dataclass
from typing import BinaryIO, Callable

from PIL import Image, ImageOps

from exceptions import DecodeFailedError, InvalidDimensionsError
from pipeline.conversion import HeicConverter
from schemas import RawInput
from utils.file_types import NATIVE_DECODE_FORMATS, is_non_native_format
from utils.logging import get_logger

logger = get_logger("pipeline.decoder")

# Takes a staged stream, returns a fully loaded image (or None if unavailable)
DecodePrimitive = Callable[[BinaryIO], "Image.Image | None"]


@dataclass(frozen=True)
class DecodedRaster:
    """Decoded pixels plus their dimensions. Never mutated after decode."""

    pixels: Image.Image
    width: int
    height: int


def decode_native(stream: BinaryIO) -> Image.Image:
    """Fast path: strict decode limited to browser-native formats."""
    with Image.open(stream, formats=NATIVE_DECODE_FORMATS) as img:
        return _normalize(img)


def decode_any(stream: BinaryIO) -> Image.Image:
    """Fallback path: let every registered Pillow plugin try."""
    stream.seek(0)
    with Image.open(stream) as img:
        return _normalize(img)


def _normalize(img: Image.Image) -> Image.Image:
    """Load pixels, apply EXIF orientation, convert to RGB or RGBA.

    Always returns a new image detached from the source stream.
    """
    img.load()
    oriented = ImageOps.exif_transpose(img) or img

    has_alpha = oriented.mode in ("RGBA", "LA", "PA") or (
        oriented.mode == "P" and "transparency" in oriented.info
    )
    target_mode = "RGBA" if has_alpha else "RGB"
    if oriented.mode == target_mode and oriented is not img:
        return oriented
    return oriented.convert(target_mode)


class Decoder:
    """Produces a DecodedRaster from arbitrary input bytes.

    HEIC/HEIF input is converted first via the injected HeicConverter.
    Decode primitives run on a worker thread against an in-memory staging
    stream that is closed on every exit path.
    """

    def __init__(
        self,
        converter: HeicConverter,
        fast_decode: DecodePrimitive | None = decode_native,
        fallback_decode: DecodePrimitive = decode_any,
    ):
        self._converter = converter
        self._fast_decode = fast_decode
        self._fallback_decode = fallback_decode

    async def decode(self, raw: RawInput) -> DecodedRaster:
        """Decode the input into a raster.

        Raises:
            ConversionFailedError: If the HEIC pre-conversion fails.
            DecodeFailedError: If neither decode path yields an image.
            InvalidDimensionsError: If the image has a zero-length side.
        """
        data = raw.data
        if is_non_native_format(raw):
            logger.debug(
                "Converting non-native input",
                extra={"context": {"name": raw.name, "media_type": raw.media_type}},
            )
            data = await self._converter.convert(data)

        pixels = await asyncio.to_thread(self._decode_staged, data, raw.name)

        width, height = pixels.size
        if width == 0 or height == 0:
            raise InvalidDimensionsError(
                "Source image has invalid dimensions.",
                width=width,
                height=height,
            )
        return DecodedRaster(pixels=pixels, width=width, height=height)

    def _decode_staged(self, data: bytes, name: str) -> Image.Image:
        with io.BytesIO(data) as staged:
            if self._fast_decode is not None:
                try:
                    pixels = self._fast_decode(staged)
                    if pixels is not None:
                        return pixels
                except Exception as e:
                    logger.debug(
                        f"Fast decode failed, falling back: {e}",
                        extra={"context": {"name": name}},
                    )

            try:
                staged.seek(0)
                pixels = self._fallback_decode(staged)
            except Exception as e:
                raise DecodeFailedError(
                    "Unable to load image for processing.",
                    name=name,
                    reason=str(e),
                )
            if pixels is None:
                raise DecodeFailedError("Unable to load image for processing.", name=name)
            return pixels
