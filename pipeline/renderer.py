import asyncio
import io
import math
from typing import Callable, Optional, Protocol

from PIL import Image

from config import settings
from exceptions import (
    EncodingFailedError,
    InvalidDimensionsError,
    SurfaceUnavailableError,
)
from pipeline.decoder import DecodedRaster
from schemas import VariantResult, VariantSpec
from utils.file_types import PILLOW_FORMATS

RESAMPLE_FILTERS = {
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}


class Surface(Protocol):
    """Off-screen rasterization target, sized at creation."""

    width: int
    height: int

    def draw(self, source: Image.Image, dx: int, dy: int, dw: int, dh: int) -> None: ...

    def encode(self, media_type: str, quality: float) -> Optional[bytes]: ...


SurfaceFactory = Callable[[int, int], Optional[Surface]]


def scaled_dimensions(width: int, height: int, target_width: int) -> tuple[int, int]:
    """Compute the output size for a downscale to target_width.

    Never upscales. Height keeps the aspect ratio, rounded half up;
    both sides are at least 1.

    Raises:
        InvalidDimensionsError: If any input is not positive.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensionsError(
            "Source image has invalid dimensions.", width=width, height=height
        )
    if target_width <= 0:
        raise InvalidDimensionsError(
            "Target width must be positive.", target_width=target_width
        )

    clamped_width = min(width, target_width)
    scale = clamped_width / width
    scaled_height = max(1, math.floor(height * scale + 0.5))
    return clamped_width, scaled_height


class PillowSurface:
    """Surface backed by a Pillow image."""

    def __init__(self, width: int, height: int, resample: str | None = None):
        resample = (resample or settings.resample_filter).lower()
        if resample not in RESAMPLE_FILTERS:
            raise ValueError(
                f"Unknown resample filter {resample!r}, "
                f"expected one of {sorted(RESAMPLE_FILTERS)}"
            )
        self.width = width
        self.height = height
        self.resample = RESAMPLE_FILTERS[resample]
        self._image: Image.Image | None = None

    def draw(self, source: Image.Image, dx: int, dy: int, dw: int, dh: int) -> None:
        if self._image is None:
            self._image = Image.new(source.mode, (self.width, self.height))
        elif self._image.mode != source.mode:
            self._image = self._image.convert(source.mode)

        resized = source.resize((dw, dh), resample=self.resample, reducing_gap=3.0)
        self._image.paste(resized, (dx, dy))

    def encode(self, media_type: str, quality: float) -> Optional[bytes]:
        if self._image is None:
            return None

        fmt = PILLOW_FORMATS.get(media_type)
        if fmt is None:
            raise ValueError(f"Unsupported output type: {media_type}")

        save_kwargs = {"format": fmt, "quality": round(quality * 100)}
        if fmt == "WEBP":
            save_kwargs["method"] = settings.webp_method

        output = io.BytesIO()
        self._image.save(output, **save_kwargs)
        return output.getvalue()


def create_pillow_surface(width: int, height: int) -> PillowSurface:
    return PillowSurface(width, height)


class Renderer:
    """Resamples a raster to a variant size and encodes it."""

    def __init__(
        self,
        create_surface: SurfaceFactory = create_pillow_surface,
        media_type: str | None = None,
    ):
        self._create_surface = create_surface
        self.media_type = media_type or settings.output_media_type

    async def render(self, raster: DecodedRaster, spec: VariantSpec) -> VariantResult:
        """Render one variant.

        Raises:
            InvalidDimensionsError: If the raster or spec has a non-positive size.
            SurfaceUnavailableError: If no surface could be created or drawn on.
            EncodingFailedError: If the encoder produced no bytes.
        """
        width, height = scaled_dimensions(raster.width, raster.height, spec.width)

        try:
            surface = self._create_surface(width, height)
        except Exception as e:
            raise SurfaceUnavailableError(f"Canvas context is unavailable: {e}")
        if surface is None:
            raise SurfaceUnavailableError("Canvas context is unavailable.")

        # Resize off the event loop so both variants render concurrently
        try:
            await asyncio.to_thread(surface.draw, raster.pixels, 0, 0, width, height)
        except Exception as e:
            raise SurfaceUnavailableError(
                f"Unable to draw onto canvas: {e}", width=width, height=height
            )

        try:
            encoded = await asyncio.to_thread(surface.encode, self.media_type, spec.quality)
        except Exception as e:
            raise EncodingFailedError(f"WebP conversion failed: {e}")
        if not encoded:
            raise EncodingFailedError("WebP conversion failed.")

        return VariantResult(
            width=width,
            height=height,
            size=len(encoded),
            quality=spec.quality,
            media_type=self.media_type,
            encoded_bytes=encoded,
        )
