"""Size-constrained image re-encoding on top of Pillow."""

from .compress import CompressedImage, ImageCompressor, compress, compress_file, derive_filename
from .errors import BudgetUnreachable, CompressionError, DecodeFailure, EncodeFailure, InvalidConfiguration
from .formats import FORMATS, FormatSupportCache, ImageFormat, default_support_cache, negotiate_format
from .options import CompressionOptions

__version__ = "0.2.0"

__all__ = [
    "BudgetUnreachable",
    "CompressedImage",
    "CompressionError",
    "CompressionOptions",
    "DecodeFailure",
    "EncodeFailure",
    "FORMATS",
    "FormatSupportCache",
    "ImageCompressor",
    "ImageFormat",
    "InvalidConfiguration",
    "compress",
    "compress_file",
    "default_support_cache",
    "derive_filename",
    "negotiate_format",
]
