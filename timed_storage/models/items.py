"""Plain result types returned by the cache engine."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheItem:
    """A key/value pair as seen by callers and eviction callbacks.

    ``key`` is the dotted external form of the stored key.
    """
    key: str
    data: Any
