"""Timed key-value cache over the SQLite backing store.

Entries can expire on a sliding window (renewed by every read and write),
an absolute lifetime (counted from the first write), or both. Eviction is
proactive: a single timer fires at the earliest predicted deadline, sweeps
everything that is due and schedules the next wakeup.
"""

import inspect
import time
from typing import Any, Callable, List, Optional

from timed_storage.core.config import Settings
from timed_storage.core.database import Database
from timed_storage.core.exceptions import InvalidKeyError
from timed_storage.core.keys import Key, KeyLike, decode_key, join_key, split_key
from timed_storage.core.logging import get_logger, log_cache_operation
from timed_storage.models.cache import StorageEntry
from timed_storage.models.items import CacheItem
from timed_storage.services.expiration import DISABLED, ExpirationPolicy, ExpiredCallback
from timed_storage.services.scheduler import SweepScheduler
from timed_storage.services.serialization import decode_value, encode_value
from timed_storage.services.timestamps import TimestampIndex

logger = get_logger(__name__)


class CacheService:
    """Async key-value cache with sliding and absolute expiration.

    One instance owns one policy and one sweep timer; separate instances
    over separate databases never interfere. All methods are meant to run
    on a single event loop.
    """

    def __init__(self, settings: Settings, database: Database,
                 clock: Callable[[], float] = time.time):
        self.settings = settings
        self.database = database
        self.policy: ExpirationPolicy = DISABLED
        self._clock = clock
        self.index = TimestampIndex(database, clock)
        self.scheduler = SweepScheduler(self.index, self.sweep, clock)

    async def startup(self):
        """Open the database and apply the configured expiration defaults."""
        await self.database.startup()
        if self.settings.expiration_enabled:
            await self.configure(
                sliding=self.settings.sliding_expiration,
                absolute=self.settings.absolute_expiration,
            )
        logger.info("Timed storage started", **self.policy.describe())

    async def shutdown(self):
        """Stop the sweep timer and close the database."""
        await self.scheduler.stop()
        await self.database.shutdown()
        logger.info("Timed storage stopped")

    async def __aenter__(self) -> "CacheService":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def next_deadline(self) -> Optional[float]:
        """Unix time of the next scheduled sweep, None when idle."""
        return self.scheduler.next_deadline

    # ============================================================================
    # Configuration
    # ============================================================================

    async def configure(self, sliding: float = 0.0, absolute: float = 0.0,
                        on_expired: Optional[ExpiredCallback] = None) -> ExpirationPolicy:
        """Replace the expiration policy.

        Raises ConfigError for an invalid combination, leaving the current
        policy in place. Stored timestamps are kept; only the scheduling
        is recomputed.
        """
        policy = ExpirationPolicy(sliding=float(sliding), absolute=float(absolute),
                                  on_expired=on_expired)

        self.scheduler.cancel()
        self.policy = policy
        logger.info("Expiration configured", **policy.describe())
        await self.scheduler.reschedule(policy)
        return policy

    # ============================================================================
    # Single entries
    # ============================================================================

    async def set(self, key: KeyLike, value: Any, expire: bool = True) -> None:
        """Store a value; ``expire=False`` makes the entry permanent."""
        segments = self._entry_key(key)
        text, kind = encode_value(value)
        await self.database.put_entry(segments, text, kind.value)
        log_cache_operation(logger, "set", join_key(segments), expire=expire)
        await self._touch(segments, expire)

    async def get(self, key: KeyLike, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when the key is absent.

        Reading renews the sliding window of an expiring entry but never
        starts expiration for a permanent one.
        """
        segments = self._entry_key(key)
        entry = await self.database.get_entry(segments)
        if entry is None:
            log_cache_operation(logger, "get", join_key(segments), hit=False)
            return default

        log_cache_operation(logger, "get", join_key(segments), hit=True)
        await self._touch(segments, expire=await self.index.is_tracked(segments))
        return decode_value(entry.value, entry.kind)

    async def delete(self, key: KeyLike) -> bool:
        """Remove a value and its timestamps. Missing keys are fine."""
        segments = self._entry_key(key)
        deleted = await self.database.delete_entry(segments)
        log_cache_operation(logger, "delete", join_key(segments), deleted=deleted)
        return deleted

    async def exists(self, key: KeyLike) -> bool:
        """Check for a stored value without touching it."""
        return await self.database.get_entry(self._entry_key(key)) is not None

    # ============================================================================
    # Namespaces and ranges
    # ============================================================================

    async def get_namespace(self, prefix: KeyLike, with_key: bool = False) -> List[Any]:
        """Values whose key starts with the segments of ``prefix``.

        ``"a.b"`` matches ``a.b`` and ``a.b.*`` but not ``a.bc``.
        """
        segments = split_key(prefix)
        entries = await self.database.scan_prefix(segments)
        log_cache_operation(logger, "get_namespace", join_key(segments), count=len(entries))
        return await self._collect(entries, with_key)

    async def delete_namespace(self, prefix: KeyLike) -> int:
        segments = split_key(prefix)
        deleted = await self.database.delete_prefix(segments)
        log_cache_operation(logger, "delete_namespace", join_key(segments), deleted=deleted)
        return deleted

    async def get_range(self, start: Optional[KeyLike] = None, end: Optional[KeyLike] = None,
                        with_key: bool = False) -> List[Any]:
        """Values with ``start <= key <= end`` in key order; None leaves a side open."""
        lower, upper = self._bounds(start, end)
        entries = await self.database.scan(lower, upper, inclusive_lower=True, inclusive_upper=True)
        log_cache_operation(logger, "get_range", f"{start}..{end}", count=len(entries))
        return await self._collect(entries, with_key)

    async def delete_range(self, start: Optional[KeyLike] = None, end: Optional[KeyLike] = None) -> int:
        lower, upper = self._bounds(start, end)
        deleted = await self.database.delete_scan(lower, upper, inclusive_lower=True, inclusive_upper=True)
        log_cache_operation(logger, "delete_range", f"{start}..{end}", deleted=deleted)
        return deleted

    # ============================================================================
    # Eviction
    # ============================================================================

    async def sweep(self) -> int:
        """Evict every entry that is past its deadline and re-arm the timer.

        Callback snapshots are taken before the batch is deleted; callbacks
        run afterwards, each isolated from the others. Returns the number
        of evicted entries.
        """
        policy = self.policy
        try:
            expired = await self.index.expired(policy, self._clock())
            if not expired:
                return 0

            snapshots: List[CacheItem] = []
            if policy.on_expired is not None:
                for key in expired:
                    # Raw read: fetching the snapshot must not renew the entry
                    entry = await self.database.get_entry(key)
                    if entry is not None:
                        snapshots.append(CacheItem(key=join_key(key),
                                                   data=decode_value(entry.value, entry.kind)))

            evicted = await self.database.delete_entries(expired)
            logger.info("Expired entries evicted", count=evicted)

            for item in snapshots:
                await self._notify(policy.on_expired, item)
            return evicted
        finally:
            await self.scheduler.reschedule(self.policy)

    async def _notify(self, callback: ExpiredCallback, item: CacheItem) -> None:
        try:
            result = callback(item)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Expiration callback failed", cache_key=item.key, error=str(e))

    # ============================================================================
    # Helpers
    # ============================================================================

    async def _touch(self, key: Key, expire: bool) -> None:
        tracked = await self.index.touch(key, expire, self.policy)
        if tracked and not self.scheduler.armed:
            await self.scheduler.reschedule(self.policy)

    async def _collect(self, entries: List[StorageEntry], with_key: bool) -> List[Any]:
        keys = [decode_key(entry.key) for entry in entries]
        tracked = await self.index.tracked(keys)

        results = []
        for key, entry in zip(keys, entries):
            # Untracked entries stay permanent; only tracked ones are renewed
            if key in tracked:
                await self._touch(key, expire=True)
            value = decode_value(entry.value, entry.kind)
            results.append(CacheItem(key=join_key(key), data=value) if with_key else value)
        return results

    @staticmethod
    def _entry_key(key: KeyLike) -> Key:
        segments = split_key(key)
        if not segments:
            raise InvalidKeyError("Entry keys need at least one segment")
        return segments

    @staticmethod
    def _bounds(start: Optional[KeyLike], end: Optional[KeyLike]):
        lower = split_key(start) if start is not None else None
        upper = split_key(end) if end is not None else None
        return lower, upper
