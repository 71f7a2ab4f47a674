"""Compress an image to a byte budget, a pixel bound and a preferred format.

Usage:
    from pic_compress import compress_file
    result = compress_file("banner.png", max_size_mb=0.08, preferred_format="webp")
    result.save("banner.webp")
"""

import functools
import logging
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .backend import (
    Bitmap,
    Canvas,
    CanvasFactory,
    Decoder,
    EncodedResult,
    Encoder,
    FormatProber,
    PillowCanvas,
    PillowDecoder,
    PillowEncoder,
    PillowFormatProber,
)
from .errors import BudgetUnreachable, EncodeFailure
from .formats import (
    FormatSupportCache,
    ImageFormat,
    default_support_cache,
    lossy_fallback,
    negotiate_format,
)
from .geometry import Rect, canvas_size, draw_rect, pre_downscale, shrink
from .options import CompressionOptions
from .quality import search_quality

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompressedImage:
    """Encoded output that fits the requested budget."""

    data: bytes
    mime_type: str
    format: str
    width: int
    height: int
    filename: str
    quality: Optional[float] = None
    attempts: int = 1

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def size_kb(self) -> float:
        return self.size / 1024

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_bytes(self.data)
        return path


def derive_filename(
    fmt: ImageFormat,
    output_filename: Optional[str] = None,
    source_name: Optional[str] = None,
) -> str:
    """Explicit name, else the source basename with the new extension, else image.<ext>."""
    if output_filename:
        return output_filename
    if source_name:
        stem = Path(source_name).stem
        if stem:
            return f"{stem}.{fmt.extension}"
    return f"image.{fmt.extension}"


class ImageCompressor:
    """Runs the decode, draw, encode and retry loop against injectable collaborators.

    Every collaborator defaults to its Pillow implementation; ``support_cache``
    defaults to the process-wide cache.
    """

    def __init__(
        self,
        decoder: Optional[Decoder] = None,
        canvas_factory: Optional[CanvasFactory] = None,
        encoder: Optional[Encoder] = None,
        prober: Optional[FormatProber] = None,
        support_cache: Optional[FormatSupportCache] = None,
    ):
        self.decoder = decoder or PillowDecoder()
        self.canvas_factory = canvas_factory or PillowCanvas
        self.encoder = encoder or PillowEncoder()
        self.prober = prober or PillowFormatProber()
        self.support_cache = support_cache if support_cache is not None else default_support_cache

    def compress(
        self,
        data: bytes,
        options: Optional[CompressionOptions] = None,
        filename: Optional[str] = None,
        **overrides,
    ) -> CompressedImage:
        """Compress ``data``; keyword overrides replace fields of ``options``."""
        options = options or CompressionOptions()
        if overrides:
            options = options.replace(**overrides)
        options.validate()

        bitmap = self.decoder.decode(data)
        try:
            return self._run(data, bitmap, options, filename)
        finally:
            bitmap.close()

    def _run(
        self,
        data: bytes,
        bitmap: Bitmap,
        options: CompressionOptions,
        filename: Optional[str],
    ) -> CompressedImage:
        report = _reporter(options.debug)
        budget = options.max_size_bytes
        max_height = options.max_height_px

        width, height = pre_downscale(
            bitmap.width, bitmap.height, options.max_width, max_height, options.downscale_divisor
        )
        if (width, height) != (bitmap.width, bitmap.height):
            report("Quick downscale by divisor %s to %dx%d", options.downscale_divisor, width, height)
        width, height = canvas_size(width, height, options.max_width, max_height)

        fmt = negotiate_format(options.preferred_format, self.prober.supports, self.support_cache)
        report("Using format: %s", fmt.mime_type)
        tried = {fmt.name}
        last_size: Optional[int] = None
        attempted: Tuple[int, int] = (width, height)

        for attempt in range(1, options.max_attempts + 1):
            attempted = (width, height)
            with closing(self._draw(bitmap, width, height, options)) as canvas:
                # encoder errors fall back on the same canvas and attempt
                while True:
                    try:
                        encoded, quality, last_size = self._encode(canvas, fmt, options)
                        break
                    except EncodeFailure:
                        fallback = None if fmt.lossless else self._fallback(options, tried)
                        if fallback is None:
                            raise
                        report("Encoding %s failed, falling back to %s", fmt.name, fallback.name)
                        fmt = fallback
                        tried.add(fmt.name)

            if encoded is not None and encoded.size <= budget:
                return self._accept(
                    data, bitmap, encoded, fmt, quality, width, height, attempt, options, filename
                )

            if fmt.lossless:
                fallback = self._fallback(options, tried)
                if fallback is None:
                    raise BudgetUnreachable(
                        f"{fmt.mime_type} output of {last_size} bytes exceeds {budget} bytes "
                        "and no lossy format is available",
                        last_size,
                        width,
                        height,
                        fmt.name,
                    )
                report(
                    "%s too big (%.1fKB), switching to %s",
                    fmt.name,
                    last_size / 1024,
                    fallback.name,
                )
                fmt = fallback
                tried.add(fmt.name)
                continue

            smaller = shrink(width, height)
            if smaller == (width, height):
                break
            report(
                "Still too big (%.1fKB), downscaling further to %dx%d",
                last_size / 1024,
                *smaller,
            )
            width, height = smaller

        raise BudgetUnreachable(
            "Failed to compress image within size constraints",
            last_size,
            attempted[0],
            attempted[1],
            fmt.name,
        )

    def _draw(self, bitmap: Bitmap, width: int, height: int, options: CompressionOptions) -> Canvas:
        canvas = self.canvas_factory(width, height, options.background)
        try:
            dst = draw_rect(bitmap.width, bitmap.height, width, height, options.resize_mode)
            canvas.draw(bitmap, Rect(0, 0, bitmap.width, bitmap.height), dst, options.smoothing)
        except Exception:
            canvas.close()
            raise
        return canvas

    def _encode(
        self, canvas: Canvas, fmt: ImageFormat, options: CompressionOptions
    ) -> Tuple[Optional[EncodedResult], Optional[float], int]:
        """Best blob for this canvas (None if nothing fits), its quality and the smallest size seen."""
        encode = functools.partial(
            self.encoder.encode,
            canvas,
            fmt,
            progressive=options.progressive,
            preserve_metadata=options.preserve_exif,
        )
        if fmt.lossless:
            encoded = encode()
            return encoded, None, encoded.size

        sizes = []

        def encode_at(quality: float) -> EncodedResult:
            encoded = encode(quality)
            sizes.append(encoded.size)
            return encoded

        found = search_quality(encode_at, options.max_size_bytes, options.min_quality, options.quality)
        if found is None:
            return None, None, min(sizes)
        return found.encoded, found.quality, found.encoded.size

    def _fallback(self, options: CompressionOptions, tried) -> Optional[ImageFormat]:
        return lossy_fallback(
            options.preferred_format, self.prober.supports, self.support_cache, exclude=tried
        )

    def _accept(
        self,
        data: bytes,
        bitmap: Bitmap,
        encoded: EncodedResult,
        fmt: ImageFormat,
        quality: Optional[float],
        width: int,
        height: int,
        attempt: int,
        options: CompressionOptions,
        filename: Optional[str],
    ) -> CompressedImage:
        # Re-encoding an input that already satisfies everything must not grow it.
        if (
            encoded.size > len(data)
            and len(data) <= options.max_size_bytes
            and (bitmap.format or "").upper() == fmt.pillow_name
            and (width, height) == (bitmap.width, bitmap.height)
            and (options.preserve_exif or not getattr(bitmap, "info", {}).get("exif"))
        ):
            encoded = EncodedResult(data, fmt.mime_type)
            quality = None

        result = CompressedImage(
            data=encoded.data,
            mime_type=encoded.mime_type,
            format=fmt.name,
            width=width,
            height=height,
            filename=derive_filename(fmt, options.output_filename, filename),
            quality=quality,
            attempts=attempt,
        )
        _reporter(options.debug)(
            "Final size: %.1fKB, Dimensions: %dx%d, format=%s, quality=%s, attempts=%d",
            result.size_kb,
            width,
            height,
            fmt.name,
            "n/a" if quality is None else f"{quality:.3f}",
            attempt,
        )
        return result


def _reporter(debug: bool) -> Callable[..., None]:
    return functools.partial(logger.log, logging.INFO if debug else logging.DEBUG)


def compress(
    data: bytes,
    options: Optional[CompressionOptions] = None,
    filename: Optional[str] = None,
    **overrides,
) -> CompressedImage:
    """Compress image bytes with the Pillow backend."""
    return ImageCompressor().compress(data, options, filename, **overrides)


def compress_file(
    path: Union[str, Path],
    options: Optional[CompressionOptions] = None,
    **overrides,
) -> CompressedImage:
    """Compress the image stored at ``path``; the result is named after it."""
    path = Path(path)
    return compress(path.read_bytes(), options, filename=path.name, **overrides)
