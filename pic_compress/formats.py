"""Output formats, the runtime support cache and format negotiation."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Collection, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageFormat:
    """A concrete output format: Pillow codec name, file extension and MIME type."""

    name: str
    pillow_name: str
    extension: str
    mime_type: str
    lossless: bool = False


FORMATS: Dict[str, ImageFormat] = {
    "webp": ImageFormat("webp", "WEBP", "webp", "image/webp"),
    "avif": ImageFormat("avif", "AVIF", "avif", "image/avif"),
    "png": ImageFormat("png", "PNG", "png", "image/png", lossless=True),
    "jpeg": ImageFormat("jpeg", "JPEG", "jpg", "image/jpeg"),
}

ALIASES = {"jpg": "jpeg"}

# Fallback priority after the caller's preference.
CANDIDATE_ORDER = ("webp", "avif", "png", "jpeg")

# Assumed to be encodable everywhere.
DEFAULT_FORMAT = "jpeg"


def normalize_format(name: str) -> str:
    """Map a user supplied format name ("JPG", "webp", ...) to a key of FORMATS."""
    key = name.strip().lower()
    key = ALIASES.get(key, key)
    if key not in FORMATS:
        raise KeyError(name)
    return key


def get_format(name: str) -> ImageFormat:
    return FORMATS[normalize_format(name)]


class FormatSupportCache:
    """Remembers which formats the runtime encoder can really produce.

    Entries are only ever added. Two concurrent probes of the same format
    store the same answer, so readers and writers need no coordination.
    """

    def __init__(self, known: Optional[Dict[str, bool]] = None):
        self._entries: Dict[str, bool] = dict(known or {})

    def get(self, name: str) -> Optional[bool]:
        return self._entries.get(name)

    def record(self, name: str, supported: bool) -> None:
        self._entries.setdefault(name, supported)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._entries)


# Created once per process and shared by every call that does not inject its own.
default_support_cache = FormatSupportCache()


def candidate_formats(preferred: str) -> List[str]:
    """Deduplicated candidates, preferred first, then CANDIDATE_ORDER."""
    ordered = [normalize_format(preferred), *CANDIDATE_ORDER]
    return list(dict.fromkeys(ordered))


def probe_formats(
    names: Collection[str],
    probe: Callable[[str], bool],
    cache: FormatSupportCache,
) -> Dict[str, bool]:
    """Return support for every name, probing the unknown ones concurrently."""
    pending = [name for name in names if name not in cache]
    if pending:
        with ThreadPoolExecutor(max_workers=len(pending)) as pool:
            for name, supported in zip(pending, pool.map(probe, pending)):
                logger.debug("Probed %s support: %s", name, supported)
                cache.record(name, bool(supported))
    return {name: bool(cache.get(name)) for name in names}


def negotiate_format(
    preferred: str,
    probe: Callable[[str], bool],
    cache: FormatSupportCache,
) -> ImageFormat:
    """Pick the first supported candidate in priority order, else JPEG."""
    candidates = candidate_formats(preferred)
    support = probe_formats(candidates, probe, cache)
    for name in candidates:
        if support[name]:
            return FORMATS[name]
    return FORMATS[DEFAULT_FORMAT]


def lossy_fallback(
    preferred: str,
    probe: Callable[[str], bool],
    cache: FormatSupportCache,
    exclude: Collection[str] = (),
) -> Optional[ImageFormat]:
    """First supported lossy candidate not in ``exclude``, or None.

    JPEG counts as supported even when the probe disagrees, matching
    negotiate_format's last resort.
    """
    candidates = [
        name
        for name in candidate_formats(preferred)
        if not FORMATS[name].lossless and name not in exclude
    ]
    support = probe_formats(candidates, probe, cache)
    for name in candidates:
        if support[name] or name == DEFAULT_FORMAT:
            return FORMATS[name]
    return None
