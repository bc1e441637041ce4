import io

import pytest
from PIL import Image

from pipeline.conversion import HeicConverter
from pipeline.decoder import Decoder
from pipeline.orchestrator import ImageOptimizer
from pipeline.renderer import Renderer
from schemas import RawInput
from storage.kv import MemoryStore


def make_image_bytes(size=(64, 48), fmt="JPEG", mode="RGB", color=(100, 150, 200), **save_kwargs):
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


class FakeSurface:
    """Records draw calls; encode returns a blob of a width-dependent size."""

    def __init__(self, width, height, sizes=None):
        self.width = width
        self.height = height
        self.sizes = sizes or {}
        self.draws = []
        self.encodes = []

    def draw(self, source, dx, dy, dw, dh):
        self.draws.append((dx, dy, dw, dh))

    def encode(self, media_type, quality):
        self.encodes.append((media_type, quality))
        return b"\x00" * self.sizes.get(self.width, 16)


class SurfaceRecorder:
    """Surface factory that keeps every surface it creates."""

    def __init__(self, sizes=None):
        self.sizes = sizes or {}
        self.surfaces = []

    def __call__(self, width, height):
        surface = FakeSurface(width, height, self.sizes)
        self.surfaces.append(surface)
        return surface


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes(size=(400, 200))


@pytest.fixture
def raw_jpeg(jpeg_bytes):
    return RawInput(data=jpeg_bytes, name="sample.jpg", media_type="image/jpeg")


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def optimizer():
    """Real Pillow pipeline; the HEIC converter is never loaded for JPEG/PNG."""
    return ImageOptimizer(decoder=Decoder(HeicConverter()), renderer=Renderer())
