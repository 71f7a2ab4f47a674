"""Exceptions raised while compressing an image."""

from typing import Any, Dict, Optional


class CompressionError(Exception):
    """Base class for every compression failure."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidConfiguration(CompressionError, ValueError):
    """An option is out of range; raised before any decoding happens."""


class DecodeFailure(CompressionError):
    """The input bytes are not a decodable image."""


class EncodeFailure(CompressionError):
    """The encoder itself errored (as opposed to producing an oversized blob)."""


class BudgetUnreachable(CompressionError):
    """No encoding satisfied the byte budget within the attempt ceiling."""

    def __init__(
        self,
        message: str,
        last_size: Optional[int] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        format: Optional[str] = None,
    ):
        super().__init__(
            message,
            {"last_size": last_size, "width": width, "height": height, "format": format},
        )
        self.last_size = last_size
        self.width = width
        self.height = height
        self.format = format
