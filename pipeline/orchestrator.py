import asyncio
import time

from config import settings
from exceptions import UnsupportedInputError
from pipeline.conversion import HeicConverter
from pipeline.decoder import Decoder
from pipeline.renderer import Renderer
from schemas import (
    OptimizationOverrides,
    OptimizationReport,
    OriginalInfo,
    RawInput,
    VariantSpec,
)
from utils.file_types import UNSUPPORTED_INPUT_MESSAGE, is_supported_image
from utils.logging import get_logger

logger = get_logger("pipeline.orchestrator")


def default_variant_specs() -> dict[str, VariantSpec]:
    """Desktop and mobile specs from settings."""
    return {
        "desktop": VariantSpec(width=settings.desktop_width, quality=settings.desktop_quality),
        "mobile": VariantSpec(width=settings.mobile_width, quality=settings.mobile_quality),
    }


def merge_overrides(
    defaults: dict[str, VariantSpec],
    overrides: OptimizationOverrides | None,
) -> dict[str, VariantSpec]:
    """Apply per-field overrides; unset fields keep their defaults."""
    if overrides is None:
        return dict(defaults)

    merged = {}
    for kind, spec in defaults.items():
        override = getattr(overrides, kind)
        merged[kind] = override.apply(spec) if override is not None else spec
    return merged


class ImageOptimizer:
    """Single entry point: one input in, desktop + mobile variants out.

    Pipeline:
    1. Reject non-image input before any decode attempt
    2. Decode (converting HEIC first)
    3. Render both variants concurrently from the shared raster
    4. Assemble the report only if every step succeeded

    Errors propagate unchanged; there is no retry.
    """

    def __init__(
        self,
        decoder: Decoder,
        renderer: Renderer,
        defaults: dict[str, VariantSpec] | None = None,
    ):
        self.decoder = decoder
        self.renderer = renderer
        self.defaults = defaults or default_variant_specs()

    async def optimize(
        self,
        raw: RawInput,
        overrides: OptimizationOverrides | None = None,
    ) -> OptimizationReport:
        """Produce desktop and mobile variants of the input.

        Raises:
            UnsupportedInputError: If the input is not an image.
            BackdropError: Any decode or render failure, unchanged.
        """
        if not is_supported_image(raw):
            raise UnsupportedInputError(
                UNSUPPORTED_INPUT_MESSAGE,
                name=raw.name,
                media_type=raw.media_type,
            )

        specs = merge_overrides(self.defaults, overrides)
        start = time.perf_counter()

        raster = await self.decoder.decode(raw)
        desktop, mobile = await asyncio.gather(
            self.renderer.render(raster, specs["desktop"]),
            self.renderer.render(raster, specs["mobile"]),
        )

        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "Optimized image",
            extra={
                "context": {
                    "name": raw.name,
                    "original_size": raw.size,
                    "desktop_size": desktop.size,
                    "mobile_size": mobile.size,
                    "elapsed_ms": round(elapsed_ms, 1),
                }
            },
        )

        return OptimizationReport(
            desktop=desktop,
            mobile=mobile,
            original=OriginalInfo(
                width=raster.width,
                height=raster.height,
                size=raw.size,
                name=raw.name,
                media_type=raw.media_type,
            ),
            elapsed_ms=elapsed_ms,
        )


def build_default_optimizer() -> ImageOptimizer:
    """Wire the Pillow-backed pipeline with one shared HEIC converter."""
    converter = HeicConverter()
    return ImageOptimizer(decoder=Decoder(converter), renderer=Renderer())
