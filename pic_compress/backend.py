"""Decode, draw and encode collaborators, with the Pillow implementations."""

import io
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeFailure, EncodeFailure
from .formats import ImageFormat, get_format
from .geometry import Rect

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

SMOOTHING = {
    "low": Image.Resampling.BILINEAR,
    "medium": Image.Resampling.BICUBIC,
    "high": Image.Resampling.LANCZOS,
}


@dataclass(frozen=True)
class EncodedResult:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class Bitmap(Protocol):
    width: int
    height: int
    format: Optional[str]

    def close(self) -> None: ...


class Canvas(Protocol):
    width: int
    height: int

    def draw(self, bitmap: Bitmap, src: Rect, dst: Rect, smoothing: str = "high") -> None: ...

    def close(self) -> None: ...


class CanvasFactory(Protocol):
    def __call__(self, width: int, height: int, background: Color) -> Canvas: ...


class Decoder(Protocol):
    def decode(self, data: bytes) -> Bitmap: ...


class Encoder(Protocol):
    def encode(
        self,
        canvas: Canvas,
        fmt: ImageFormat,
        quality: Optional[float] = None,
        *,
        progressive: bool = False,
        preserve_metadata: bool = False,
    ) -> EncodedResult: ...


class FormatProber(Protocol):
    def supports(self, name: str) -> bool: ...


def to_pillow_quality(quality: float) -> int:
    """Map a [0, 1] quality factor onto Pillow's 1..100 scale."""
    return max(1, min(100, int(round(quality * 100))))


def flatten_transparency(img: Image.Image, bg_color: Color) -> Image.Image:
    """Remove alpha channel so JPEG saves cleanly."""
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, bg_color)
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def drop_opaque_alpha(img: Image.Image) -> Image.Image:
    """An all-opaque alpha channel only costs bytes."""
    if img.mode == "RGBA" and img.getchannel("A").getextrema() == (255, 255):
        return img.convert("RGB")
    return img


class PillowDecoder:
    def decode(self, data: bytes) -> Image.Image:
        """Open ``data`` fully and return it upright (EXIF orientation applied)."""
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(
                f"Input is not a decodable image: {exc}", {"input_size": len(data)}
            ) from exc

        source_format = image.format
        upright = ImageOps.exif_transpose(image)
        if upright is not image:
            image.close()
        upright.format = source_format
        return upright


class PillowCanvas:
    """RGBA drawing surface, transparent until something is drawn on it."""

    def __init__(self, width: int, height: int, background: Color = (255, 255, 255)):
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.background = background
        self.exif: Optional[bytes] = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def draw(self, bitmap: Image.Image, src: Rect, dst: Rect, smoothing: str = "high") -> None:
        source = bitmap if bitmap.mode in ("RGB", "RGBA") else bitmap.convert("RGBA")
        box = (src.x, src.y, src.x + src.width, src.y + src.height)
        resized = source.resize(
            (dst.width, dst.height), SMOOTHING[smoothing], box=box, reducing_gap=3.0
        )
        # paste clips whatever falls outside the canvas
        self.image.paste(resized, (dst.x, dst.y))
        resized.close()
        if source is not bitmap:
            source.close()
        self.exif = getattr(bitmap, "info", {}).get("exif")

    def close(self) -> None:
        self.image.close()

    def __enter__(self) -> "PillowCanvas":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class PillowEncoder:
    def encode(
        self,
        canvas: PillowCanvas,
        fmt: ImageFormat,
        quality: Optional[float] = None,
        *,
        progressive: bool = False,
        preserve_metadata: bool = False,
    ) -> EncodedResult:
        """Save the canvas into bytes using the requested format and quality."""
        if fmt.name == "jpeg":
            work_img = flatten_transparency(canvas.image, canvas.background)
        else:
            work_img = drop_opaque_alpha(canvas.image)

        save_kwargs = {}
        if not fmt.lossless and quality is not None:
            save_kwargs["quality"] = to_pillow_quality(quality)
        if fmt.name == "jpeg":
            save_kwargs["optimize"] = True
            save_kwargs["progressive"] = progressive
        if fmt.name == "webp":
            save_kwargs["method"] = 6
        if fmt.name == "png":
            save_kwargs["compress_level"] = 9
        if preserve_metadata and canvas.exif:
            save_kwargs["exif"] = canvas.exif

        buffer = io.BytesIO()
        try:
            work_img.save(buffer, format=fmt.pillow_name, **save_kwargs)
        except (KeyError, OSError, ValueError) as exc:
            raise EncodeFailure(
                f"Compression failed for {fmt.mime_type}: {exc}",
                {"format": fmt.name, "quality": quality},
            ) from exc
        finally:
            if work_img is not canvas.image:
                work_img.close()
        return EncodedResult(buffer.getvalue(), fmt.mime_type)


class PillowFormatProber:
    """Asks Pillow to write a 1x1 image and checks the format it actually wrote."""

    def supports(self, name: str) -> bool:
        fmt = get_format(name)
        buffer = io.BytesIO()
        try:
            Image.new("RGB", (1, 1)).save(buffer, format=fmt.pillow_name)
            buffer.seek(0)
            with Image.open(buffer) as probe:
                return probe.format == fmt.pillow_name
        except (KeyError, OSError, ValueError) as exc:
            logger.debug("%s is not encodable here: %s", fmt.name, exc)
            return False
