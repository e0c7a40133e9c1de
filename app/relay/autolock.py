"""
Auto-lock scheduler — re-locks the door once the unlock window elapses.

Each armed auto-lock is an asyncio task held in a ``PendingAutoLock``.  Arming
replaces the previous one (cancel first, then store the new task) so a stale
timer can never complete on behalf of a newer unlock.

    Armed ──sleep──▶ Fired      lock command sent, on_complete() runs
    Armed ──cancel─▶ Cancelled  no command, on_complete() never runs

A failed lock command is logged and ``on_complete()`` still runs: the gate
must not stay busy forever because one relock attempt failed.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from app.relay.models import PendingAutoLock

logger = logging.getLogger(__name__)


class AutoLockScheduler:
    def __init__(self, lock_door: Callable[[], Awaitable[None]]) -> None:
        self._lock_door = lock_door
        self._pending: PendingAutoLock | None = None

    @property
    def pending(self) -> PendingAutoLock | None:
        return self._pending

    def arm(self, duration_ms: int, on_complete: Callable[[], None]) -> PendingAutoLock:
        """Schedule a lock in *duration_ms*, replacing any pending one."""
        self.cancel()
        loop = asyncio.get_running_loop()
        delay = duration_ms / 1000
        task = loop.create_task(self._fire(delay, on_complete), name="relay_auto_lock")
        pending = PendingAutoLock(
            task=task,
            duration_ms=duration_ms,
            fire_at=datetime.now(timezone.utc) + timedelta(seconds=delay),
            deadline=loop.time() + delay,
        )
        self._pending = pending
        logger.debug("Auto-lock armed for %d ms", duration_ms)
        return pending

    def cancel(self) -> bool:
        """Cancel the pending auto-lock.  Returns ``True`` if one was armed."""
        pending, self._pending = self._pending, None
        if pending is None:
            return False
        pending.task.cancel()
        logger.debug("Auto-lock cancelled")
        return True

    async def _fire(self, delay: float, on_complete: Callable[[], None]) -> None:
        await asyncio.sleep(delay)
        try:
            await self._lock_door()
            logger.info("Door locked (auto-lock)")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Auto-lock failed: %s", exc)

        current = self._pending
        if current is not None and current.task is asyncio.current_task():
            self._pending = None
            on_complete()
