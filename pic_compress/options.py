"""Compression settings and their validation."""

import dataclasses
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import InvalidConfiguration
from .formats import normalize_format
from .geometry import RESIZE_MODES

SMOOTHING_LEVELS = ("low", "medium", "high")


@dataclass(frozen=True)
class CompressionOptions:
    """Settings for one compression call.

    Fields:
        max_size_mb: Byte budget in megabytes (1 MB = 1024 * 1024 bytes).
        quality: Starting (highest) quality factor, 0..1.
        max_width: Maximum output width, px.
        max_height: Maximum output height, px. ``None`` means ``max_width``.
        preferred_format: webp, avif, png or jpeg. Falls back when unsupported.
        preserve_exif: Pass the source EXIF block through to the encoder.
        resize_mode: contain, cover, fill, inside or outside.
        min_quality: Lowest quality the search may try, 0..1.
        progressive: Progressive JPEG output.
        debug: Report decisions at INFO instead of DEBUG.
        output_filename: Name for the result instead of a derived one.
        downscale_divisor: Cheap pre-shrink for sources far beyond the bounds.
        smoothing: Resampling quality when drawing (low, medium, high).
        background: Fill color when transparency must be flattened.
        max_attempts: Top-level draw/encode attempts before giving up.
    """

    max_size_mb: float = 0.1
    quality: float = 0.9
    max_width: int = 800
    max_height: Optional[int] = None
    preferred_format: str = "webp"
    preserve_exif: bool = False
    resize_mode: str = "contain"
    min_quality: float = 0.1
    progressive: bool = False
    debug: bool = False
    output_filename: Optional[str] = None
    downscale_divisor: float = 5
    smoothing: str = "high"
    background: Tuple[int, int, int] = (255, 255, 255)
    max_attempts: int = 3

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    @property
    def max_height_px(self) -> int:
        return self.max_height if self.max_height is not None else self.max_width

    def replace(self, **changes) -> "CompressionOptions":
        return dataclasses.replace(self, **changes)

    def validate(self) -> "CompressionOptions":
        """Raise InvalidConfiguration for the first bad field, else return self."""
        if self.max_size_mb <= 0:
            raise InvalidConfiguration("maxSizeMB must be greater than 0", {"max_size_mb": self.max_size_mb})
        if self.max_size_bytes < 1:
            raise InvalidConfiguration("maxSizeMB is smaller than one byte", {"max_size_mb": self.max_size_mb})
        if self.max_width <= 0:
            raise InvalidConfiguration("maxWidth must be greater than 0", {"max_width": self.max_width})
        if self.max_height is not None and self.max_height <= 0:
            raise InvalidConfiguration("maxHeight must be greater than 0", {"max_height": self.max_height})
        if not 0 < self.quality <= 1:
            raise InvalidConfiguration("quality must be in (0, 1]", {"quality": self.quality})
        if not 0 <= self.min_quality < 1:
            raise InvalidConfiguration("minQuality must be in [0, 1)", {"min_quality": self.min_quality})
        if self.min_quality > self.quality:
            raise InvalidConfiguration(
                "minQuality must not exceed quality",
                {"min_quality": self.min_quality, "quality": self.quality},
            )
        if self.downscale_divisor <= 1:
            raise InvalidConfiguration(
                "downscaleDivisor must be greater than 1", {"downscale_divisor": self.downscale_divisor}
            )
        if self.max_attempts < 1:
            raise InvalidConfiguration("maxAttempts must be at least 1", {"max_attempts": self.max_attempts})
        try:
            normalize_format(self.preferred_format)
        except KeyError:
            raise InvalidConfiguration(
                f"Unsupported format '{self.preferred_format}'", {"preferred_format": self.preferred_format}
            ) from None
        if self.resize_mode not in RESIZE_MODES:
            raise InvalidConfiguration(f"Unknown resize mode '{self.resize_mode}'", {"resize_mode": self.resize_mode})
        if self.smoothing not in SMOOTHING_LEVELS:
            raise InvalidConfiguration(f"Unknown smoothing '{self.smoothing}'", {"smoothing": self.smoothing})
        return self
