"""Expiration policy for the timed store."""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from timed_storage.core.exceptions import ConfigError
from timed_storage.models.items import CacheItem

ExpiredCallback = Callable[[CacheItem], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ExpirationPolicy:
    """Sliding and absolute time-to-live, in seconds.

    A zero duration disables that policy. When both are enabled the
    absolute duration must be at least the sliding one: a shorter absolute
    lifetime would always win, so sliding renewal could never matter.

    ``on_expired`` receives a CacheItem for every evicted entry and may be
    a plain function or a coroutine function.
    """
    sliding: float = 0.0
    absolute: float = 0.0
    on_expired: Optional[ExpiredCallback] = None

    def __post_init__(self) -> None:
        if self.sliding < 0 or self.absolute < 0:
            raise ConfigError(
                f"Expiration durations must be >= 0 (sliding={self.sliding}, absolute={self.absolute})",
                sliding=self.sliding, absolute=self.absolute,
            )
        if self.sliding > 0 and self.absolute > 0 and self.absolute < self.sliding:
            raise ConfigError(
                f"Absolute expiration ({self.absolute}s) must not be shorter than "
                f"sliding expiration ({self.sliding}s)",
                sliding=self.sliding, absolute=self.absolute,
            )

    @property
    def sliding_enabled(self) -> bool:
        return self.sliding > 0

    @property
    def absolute_enabled(self) -> bool:
        return self.absolute > 0

    @property
    def enabled(self) -> bool:
        return self.sliding_enabled or self.absolute_enabled

    def describe(self) -> dict:
        """Log-friendly summary."""
        return {
            "sliding": self.sliding,
            "absolute": self.absolute,
            "callback": self.on_expired is not None,
        }


DISABLED = ExpirationPolicy()
