"""
Command line front end: compress an image to a target file size.

Usage examples:
  pic-compress banner.png --target-kb 80
  pic-compress banner.png -o banner.webp --target-kb 60 --format webp
  pic-compress banner.png --max-width 1600 --max-size-mb 0.5 --resize-mode cover
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from .compress import CompressedImage, compress_file
from .errors import CompressionError
from .geometry import RESIZE_MODES
from .logging_config import setup_logging
from .options import SMOOTHING_LEVELS, CompressionOptions

logger = logging.getLogger(__name__)


def parse_color(value: str) -> Tuple[int, int, int]:
    """Convert common color strings into an RGB tuple."""
    value = value.strip().lower()
    if value.startswith("#"):
        value = value.lstrip("#")
        if len(value) == 3:
            value = "".join(ch * 2 for ch in value)
        if len(value) != 6:
            raise argparse.ArgumentTypeError("Hex color must be 3 or 6 characters.")
        try:
            return tuple(int(value[i : i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid hex color '#{value}'.") from None
    named = {
        "white": (255, 255, 255),
        "black": (0, 0, 0),
        "gray": (245, 245, 245),
        "red": (255, 0, 0),
    }
    if value in named:
        return named[value]
    raise argparse.ArgumentTypeError(f"Unsupported color '{value}'. Use hex or a basic name.")


def default_output_path(input_path: Path, result: CompressedImage) -> Path:
    ext = Path(result.filename).suffix or f".{result.format}"
    return input_path.with_name(f"{input_path.stem}_compressed{ext}")


def build_parser() -> argparse.ArgumentParser:
    defaults = CompressionOptions()
    parser = argparse.ArgumentParser(
        prog="pic-compress",
        description="Compress an image to a target size while bounding its dimensions.",
    )
    parser.add_argument("input", type=Path, help="Input image path.")
    parser.add_argument("-o", "--output", type=Path, help="Output path. Defaults to *_compressed.<ext>.")
    budget = parser.add_mutually_exclusive_group()
    budget.add_argument(
        "--max-size-mb",
        type=float,
        default=defaults.max_size_mb,
        help=f"Desired max size in MB. Default: {defaults.max_size_mb}.",
    )
    budget.add_argument("--target-kb", type=float, help="Desired max size in KB, instead of --max-size-mb.")
    parser.add_argument(
        "--format",
        dest="preferred_format",
        choices=["webp", "avif", "png", "jpeg", "jpg"],
        default=defaults.preferred_format,
        help="Preferred output format. Falls back when this runtime cannot encode it. Default: webp.",
    )
    parser.add_argument(
        "--max-width", type=int, default=defaults.max_width, help=f"Max width. Default: {defaults.max_width}."
    )
    parser.add_argument("--max-height", type=int, help="Max height. Defaults to max width.")
    parser.add_argument(
        "--resize-mode",
        choices=RESIZE_MODES,
        default=defaults.resize_mode,
        help="How content is placed on the bounded canvas. Default: contain.",
    )
    parser.add_argument(
        "--quality", type=float, default=defaults.quality, help="Starting quality (0-1]. Default: 0.9."
    )
    parser.add_argument(
        "--min-quality",
        type=float,
        default=defaults.min_quality,
        help="Lowest quality to try [0-1). Default: 0.1.",
    )
    parser.add_argument(
        "--downscale-divisor",
        type=float,
        default=defaults.downscale_divisor,
        help="Pre-shrink factor for sources far beyond the bounds. Default: 5.",
    )
    parser.add_argument(
        "--smoothing", choices=SMOOTHING_LEVELS, default=defaults.smoothing, help="Resampling quality."
    )
    parser.add_argument("--progressive", action="store_true", help="Write progressive JPEG.")
    parser.add_argument("--preserve-exif", action="store_true", help="Keep the source EXIF block.")
    parser.add_argument(
        "--bg-color",
        type=parse_color,
        default="white",
        help="Background color for flattening transparency. Accepts hex (#fff) or names (white, black, gray, red).",
    )
    parser.add_argument("--debug", action="store_true", help="Log every compression decision.")
    parser.add_argument("--log-file", help="Also write a DEBUG log to this file.")
    return parser


def options_from_args(args: argparse.Namespace) -> CompressionOptions:
    max_size_mb = args.target_kb / 1024 if args.target_kb is not None else args.max_size_mb
    return CompressionOptions(
        max_size_mb=max_size_mb,
        quality=args.quality,
        max_width=args.max_width,
        max_height=args.max_height,
        preferred_format=args.preferred_format,
        preserve_exif=args.preserve_exif,
        resize_mode=args.resize_mode,
        min_quality=args.min_quality,
        progressive=args.progressive,
        debug=args.debug,
        output_filename=args.output.name if args.output else None,
        downscale_divisor=args.downscale_divisor,
        smoothing=args.smoothing,
        background=args.bg_color,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug, path=args.log_file)

    try:
        result = compress_file(args.input, options_from_args(args))
    except FileNotFoundError:
        print(f"File not found: {args.input}", file=sys.stderr)
        return 1
    except CompressionError as exc:
        logger.debug("Compression failed: %s", exc.details)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output_path = result.save(args.output or default_output_path(args.input, result))
    quality = "n/a" if result.quality is None else f"{result.quality:.2f}"
    print(
        f"Saved {output_path} | {result.size_kb:.1f} KB | {result.width}x{result.height} "
        f"| format={result.format} | quality={quality}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
