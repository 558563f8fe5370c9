"""Per-entry created/updated bookkeeping.

Every read and write of an expiring entry "touches" it: ``created`` is
stamped once, ``updated`` on every touch. Sliding expiration measures from
``updated``, absolute expiration from ``created``.
"""

import time
from typing import Callable, List, Optional, Sequence, Set, Tuple

from timed_storage.core.database import Database
from timed_storage.core.keys import Key
from timed_storage.core.logging import get_logger
from timed_storage.services.expiration import ExpirationPolicy

logger = get_logger(__name__)


class TimestampIndex:
    """Timestamp records stored alongside the values in the database."""

    def __init__(self, database: Database, clock: Callable[[], float] = time.time):
        self.database = database
        self._clock = clock

    async def touch(self, key: Key, expire: bool, policy: ExpirationPolicy) -> bool:
        """Update bookkeeping for an access to ``key``.

        Returns True when the entry is tracked for expiration afterwards.
        """
        if not expire:
            await self.database.delete_timestamps(key)
            return False

        if not policy.enabled:
            return False

        now = self._clock()
        existing = await self.database.get_timestamps(key)
        created = existing.created if existing else now
        await self.database.save_timestamps(key, created, now)
        return True

    async def is_tracked(self, key: Key) -> bool:
        return await self.database.get_timestamps(key) is not None

    async def tracked(self, keys: Sequence[Key]) -> Set[Key]:
        return await self.database.get_tracked_keys(keys)

    async def minimums(self) -> Tuple[Optional[float], Optional[float]]:
        """(min created, min updated) across every tracked entry."""
        return await self.database.get_min_timestamps()

    async def expired(self, policy: ExpirationPolicy, now: float) -> List[Key]:
        """Keys past their sliding or absolute deadline at ``now``."""
        if not policy.enabled:
            return []
        return await self.database.get_expired_keys(
            updated_before=now - policy.sliding if policy.sliding_enabled else None,
            created_before=now - policy.absolute if policy.absolute_enabled else None,
        )
