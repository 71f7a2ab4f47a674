import io
import os

import pytest
from PIL import Image

from pic_compress.backend import EncodedResult
from pic_compress.errors import DecodeFailure, EncodeFailure
from pic_compress.formats import FormatSupportCache


class FakeBitmap:
    def __init__(self, width, height, format=None):
        self.width = width
        self.height = height
        self.format = format
        self.closed = False

    def close(self):
        self.closed = True


class FakeDecoder:
    def __init__(self, width=2000, height=1500, format="PNG"):
        self.size = (width, height)
        self.format = format
        self.calls = 0
        self.bitmaps = []

    def decode(self, data):
        self.calls += 1
        if data == b"garbage":
            raise DecodeFailure("Input is not a decodable image")
        bitmap = FakeBitmap(*self.size, format=self.format)
        self.bitmaps.append(bitmap)
        return bitmap


class FakeCanvas:
    def __init__(self, width, height, background=(255, 255, 255)):
        self.width = width
        self.height = height
        self.background = background
        self.draws = []
        self.closed = False

    def draw(self, bitmap, src, dst, smoothing="high"):
        self.draws.append((src, dst, smoothing))

    def close(self):
        self.closed = True


class FakeCanvasFactory:
    def __init__(self):
        self.canvases = []

    def __call__(self, width, height, background):
        canvas = FakeCanvas(width, height, background)
        self.canvases.append(canvas)
        return canvas

    @property
    def sizes(self):
        return [(c.width, c.height) for c in self.canvases]


def default_size_model(fmt, width, height, quality):
    """Lossy bytes grow with pixels and quality; PNG is three bytes per pixel."""
    if fmt == "png":
        return width * height * 3
    return int(width * height * quality * 0.2)


class FakeEncoder:
    def __init__(self, size_model=default_size_model, failing=()):
        self.size_model = size_model
        self.failing = set(failing)
        self.calls = []

    def encode(self, canvas, fmt, quality=None, *, progressive=False, preserve_metadata=False):
        self.calls.append((fmt.name, canvas.width, canvas.height, quality))
        if fmt.name in self.failing:
            raise EncodeFailure(f"Compression failed for {fmt.mime_type}")
        size = self.size_model(fmt.name, canvas.width, canvas.height, quality)
        return EncodedResult(b"\0" * size, fmt.mime_type)


class FakeProber:
    def __init__(self, supported=("webp", "png", "jpeg")):
        self.supported = set(supported)
        self.calls = []

    def supports(self, name):
        self.calls.append(name)
        return name in self.supported


@pytest.fixture
def support_cache():
    return FormatSupportCache()


@pytest.fixture
def canvas_factory():
    return FakeCanvasFactory()


def image_bytes(img: Image.Image, fmt: str = "PNG", **kwargs) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


def gradient(width: int, height: int) -> Image.Image:
    """Smooth image that compresses well."""
    horizontal = Image.linear_gradient("L").resize((width, height))
    vertical = horizontal.transpose(Image.Transpose.ROTATE_90).resize((width, height))
    return Image.merge("RGB", (horizontal, vertical, Image.new("L", (width, height), 128)))


def noise(width: int, height: int) -> Image.Image:
    """Random pixels, close to incompressible."""
    return Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
