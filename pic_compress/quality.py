"""Binary search over the lossy quality factor."""

import logging
from typing import Callable, NamedTuple, Optional

from .backend import EncodedResult

logger = logging.getLogger(__name__)

# Bounds move this far past each probed midpoint, so low always passes high.
QUALITY_STEP = 0.05


class SearchResult(NamedTuple):
    encoded: EncodedResult
    quality: float
    steps: int


def search_quality(
    encode: Callable[[float], EncodedResult],
    max_bytes: int,
    min_quality: float,
    start_quality: float,
    step: float = QUALITY_STEP,
) -> Optional[SearchResult]:
    """Highest quality in [min_quality, start_quality] whose blob fits ``max_bytes``.

    ``encode`` errors propagate. Returns None when even the lowest probed
    quality is too large.
    """
    low, high = min_quality, start_quality
    best: Optional[SearchResult] = None
    steps = 0

    while low <= high:
        mid = (low + high) / 2
        encoded = encode(mid)
        steps += 1
        logger.debug("quality=%.3f => %d bytes", mid, encoded.size)
        if encoded.size <= max_bytes:
            best = SearchResult(encoded, mid, steps)
            low = mid + step
        else:
            high = mid - step

    if best is not None:
        best = best._replace(steps=steps)
    return best
