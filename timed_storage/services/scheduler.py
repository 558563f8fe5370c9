"""Single-timer sweep scheduling.

Rather than polling, the scheduler predicts when the earliest tracked
entry will expire and arms one asyncio task for that moment. The task
runs the sweep, and the sweep ends by asking for a new schedule, so the
loop keeps itself alive while expiring entries exist and goes idle once
none remain. At most one timer task is outstanding at any time.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from timed_storage.core.logging import get_logger
from timed_storage.services.expiration import ExpirationPolicy
from timed_storage.services.timestamps import TimestampIndex

logger = get_logger(__name__)


def compute_deadline(policy: ExpirationPolicy,
                     min_created: Optional[float],
                     min_updated: Optional[float]) -> Optional[float]:
    """Earliest moment any tracked entry can expire, or None."""
    candidates = []
    if policy.sliding_enabled and min_updated is not None:
        candidates.append(min_updated + policy.sliding)
    if policy.absolute_enabled and min_created is not None:
        candidates.append(min_created + policy.absolute)
    return min(candidates) if candidates else None


class SweepScheduler:
    """Owns the one pending sweep timer of a cache instance."""

    def __init__(self, index: TimestampIndex,
                 on_fire: Callable[[], Awaitable[object]],
                 clock: Callable[[], float] = time.time):
        self._index = index
        self._on_fire = on_fire
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        # Bumped by every reschedule/cancel; a scan that finishes under an
        # older generation must not touch the timer
        self._generation = 0
        self.next_deadline: Optional[float] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweeping(self) -> bool:
        return self._running is not None

    async def reschedule(self, policy: ExpirationPolicy) -> Optional[float]:
        """Recompute the next deadline from the index and re-arm the timer.

        Safe to call redundantly. When calls interleave, the one that
        started last wins; an older call whose scan completes later leaves
        the timer alone.
        """
        self._generation += 1
        generation = self._generation

        min_created, min_updated = (None, None)
        if policy.enabled:
            min_created, min_updated = await self._index.minimums()

        if generation != self._generation:
            logger.debug("Superseded reschedule dropped")
            return self.next_deadline

        deadline = compute_deadline(policy, min_created, min_updated)

        # No await between cancel and arm: a single timer is ever outstanding
        self.cancel()
        self.next_deadline = deadline
        if deadline is None:
            logger.debug("Sweep timer idle")
            return None

        delay = max(0.0, deadline - self._clock())
        self._task = asyncio.create_task(self._fire_after(delay))
        logger.debug("Sweep scheduled", deadline=deadline, delay_seconds=round(delay, 3))
        return deadline

    def cancel(self) -> None:
        """Drop the pending timer, if any, and abandon in-flight reschedules."""
        self._generation += 1
        task = self._task
        self._task = None
        self.next_deadline = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def stop(self) -> None:
        """Cancel the pending timer and wait for a running sweep to finish.

        A sweep already in progress runs to completion; the timer it arms
        on the way out is cancelled as well.
        """
        current = asyncio.current_task()
        while True:
            waiting = [t for t in (self._task, self._running) if t is not None and t is not current]
            self.cancel()
            if not waiting:
                return
            for task in waiting:
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)

        # From here on this task is running the sweep, no longer a pending timer
        current = asyncio.current_task()
        if self._task is current:
            self._task = None
            self.next_deadline = None
        self._running = current

        try:
            await self._on_fire()
        except Exception as e:
            logger.error("Scheduled sweep failed", error=str(e))
        finally:
            if self._running is current:
                self._running = None
