import asyncio
import io
from typing import Callable

from PIL import Image

from config import settings
from exceptions import ConversionFailedError, ConversionTimeoutError
from utils.file_types import PILLOW_FORMATS
from utils.logging import get_logger

logger = get_logger("pipeline.conversion")

# convert(data, target_media_type, quality) -> encoded blobs, primary image first
ConvertRoutine = Callable[[bytes, str, float], list[bytes]]


def load_pillow_heif() -> ConvertRoutine:
    """Import pillow-heif and register its Pillow opener.

    Importing libheif is slow, so this runs once per HeicConverter.
    """
    import pillow_heif

    pillow_heif.register_heif_opener()
    return convert_heif


def convert_heif(data: bytes, target_media_type: str, quality: float) -> list[bytes]:
    """Re-encode the primary image of a HEIF container.

    Pillow opens the primary image by default; bursts and other secondary
    images are left untouched.

    Requires the HEIF opener to be registered (see load_pillow_heif).
    """
    fmt = PILLOW_FORMATS.get(target_media_type)
    if fmt is None:
        raise ValueError(f"Unsupported conversion target: {target_media_type}")

    output = io.BytesIO()
    with Image.open(io.BytesIO(data)) as img:
        exif = img.info.get("exif")
        primary = img.convert("RGB") if fmt == "JPEG" and img.mode not in ("RGB", "L") else img

        save_kwargs = {"format": fmt, "quality": round(quality * 100)}
        if exif:
            save_kwargs["exif"] = exif
        primary.save(output, **save_kwargs)
    return [output.getvalue()]


class HeicConverter:
    """Lazily-loaded HEIC/HEIF to native-format converter.

    Construct one per process and inject it into the Decoder. The routine
    is loaded on first use; concurrent first callers wait on the same load.
    A failed load is not cached, so the next call tries again.
    """

    def __init__(
        self,
        loader: Callable[[], ConvertRoutine] | None = None,
        timeout: float | None = None,
    ):
        self._loader = loader or load_pillow_heif
        self._timeout = timeout if timeout is not None else settings.conversion_timeout_seconds
        self._routine: ConvertRoutine | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._routine is not None

    async def _get_routine(self) -> ConvertRoutine:
        if self._routine is not None:
            return self._routine

        async with self._lock:
            if self._routine is None:
                try:
                    self._routine = await asyncio.to_thread(self._loader)
                except Exception as e:
                    raise ConversionFailedError(f"HEIC converter unavailable: {e}")
                logger.debug("HEIC converter loaded")
        return self._routine

    async def convert(
        self,
        data: bytes,
        target_media_type: str | None = None,
        quality: float | None = None,
    ) -> bytes:
        """Convert HEIC bytes to a natively decodable format.

        Returns the first image when the container holds several.

        Raises:
            ConversionTimeoutError: If the routine exceeds the timeout.
            ConversionFailedError: If loading or conversion fails, or no
                output was produced.
        """
        target_media_type = target_media_type or settings.conversion_media_type
        quality = quality if quality is not None else settings.conversion_quality

        routine = await self._get_routine()

        try:
            results = await asyncio.wait_for(
                asyncio.to_thread(routine, data, target_media_type, quality),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise ConversionTimeoutError(
                f"HEIC conversion timed out after {self._timeout}s",
                timeout=self._timeout,
            )
        except Exception as e:
            raise ConversionFailedError(f"HEIC conversion failed: {e}")

        if isinstance(results, (bytes, bytearray)):
            results = [bytes(results)]
        if not results or not results[0]:
            raise ConversionFailedError("HEIC conversion produced no output")

        if len(results) > 1:
            logger.debug(
                "HEIC container held multiple images, using the first",
                extra={"context": {"images": len(results)}},
            )
        return results[0]
