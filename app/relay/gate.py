"""
Command gate — the single serialization point for relay commands.

Unlock takes the gate and keeps it until the auto-lock that follows it has
completed; a second unlock in that window is rejected with ``RelayBusy``.
A manual lock always wins: it cancels the pending auto-lock and takes the gate
over from whoever holds it.  Status reads never take the gate.

Ownership is tracked with a generation counter.  Each holder remembers the
generation it acquired and may only release that one, so a superseded holder
(a cancelled auto-lock, a preempted lock) can never clear a newer holder's
busy state.
"""

import logging

from app.relay.autolock import AutoLockScheduler
from app.relay.device import TuyaDeviceSession
from app.relay.errors import ConnectionLost, RelayBusy, RelayCommandFailed, RelayOffline
from app.relay.models import (
    CommandAction,
    CommandResult,
    DoorState,
    GateState,
    PendingAutoLock,
)
from app.relay.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)

DEFAULT_UNLOCK_DURATION_MS = 3000


class CommandGate:
    def __init__(
        self,
        session: TuyaDeviceSession,
        supervisor: ConnectionSupervisor,
        unlock_duration_ms: int = DEFAULT_UNLOCK_DURATION_MS,
    ) -> None:
        self._session = session
        self._supervisor = supervisor
        self._unlock_duration_ms = unlock_duration_ms
        self._state = GateState.IDLE
        self._generation = 0
        self._believed: DoorState | None = None
        self._scheduler = AutoLockScheduler(self._auto_lock)

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is GateState.BUSY

    @property
    def unlock_duration_ms(self) -> int:
        return self._unlock_duration_ms

    @property
    def believed_state(self) -> DoorState | None:
        """Door state implied by the last successful command, if any."""
        return self._believed

    @property
    def pending_auto_lock(self) -> PendingAutoLock | None:
        return self._scheduler.pending

    def set_unlock_duration(self, duration_ms: int) -> None:
        if duration_ms <= 0:
            raise ValueError("unlock duration must be positive")
        self._unlock_duration_ms = duration_ms

    # ── Gate ownership ───────────────────────────────────────────────────────

    def _acquire(self) -> int:
        self._generation += 1
        self._state = GateState.BUSY
        return self._generation

    def _release(self, generation: int) -> None:
        if generation == self._generation:
            self._state = GateState.IDLE

    def _require_online(self) -> None:
        if not self._supervisor.is_online():
            raise RelayOffline()

    async def _switch(self, turn_on: bool) -> None:
        """Send a relay command, translating session errors for callers."""
        try:
            await self._session.send_command(turn_on)
        except ConnectionLost as exc:
            self._supervisor.connection_lost(exc)
            raise RelayCommandFailed(exc.reason) from exc
        except RelayCommandFailed:
            raise
        except Exception as exc:
            raise RelayCommandFailed(str(exc) or type(exc).__name__) from exc

    # ── Operations ───────────────────────────────────────────────────────────

    async def execute(
        self, action: CommandAction, duration_ms: int | None = None
    ) -> CommandResult:
        if action is CommandAction.UNLOCK:
            return await self.unlock(duration_ms)
        if action is CommandAction.LOCK:
            return await self.lock()
        if action is CommandAction.STATUS:
            return await self.status()
        raise ValueError(f"Unknown relay action: {action!r}")

    async def unlock(self, duration_ms: int | None = None) -> CommandResult:
        """Unlock the door and arm the auto-lock.  Raises ``RelayBusy`` if held."""
        self._require_online()
        if self.busy:
            raise RelayBusy()

        duration = duration_ms or self._unlock_duration_ms
        generation = self._acquire()
        self._scheduler.cancel()
        armed = False
        try:
            await self._switch(True)
            if generation != self._generation:
                # A manual lock took the gate while the unlock was in flight.
                raise RelayCommandFailed("Unlock superseded by a lock request")
            self._believed = DoorState.UNLOCKED
            self._scheduler.arm(duration, lambda: self._release(generation))
            armed = True
        finally:
            if not armed:
                self._release(generation)

        logger.info("Door unlocked for %d ms", duration)
        return CommandResult(
            action=CommandAction.UNLOCK,
            state=DoorState.UNLOCKED,
            duration_ms=duration,
        )

    async def lock(self) -> CommandResult:
        """Lock immediately, cancelling any pending auto-lock."""
        self._require_online()
        if self._scheduler.cancel():
            logger.info("Manual lock preempts pending auto-lock")
        generation = self._acquire()
        try:
            await self._switch(False)
            self._believed = DoorState.LOCKED
        finally:
            self._release(generation)

        logger.info("Door locked")
        return CommandResult(action=CommandAction.LOCK, state=DoorState.LOCKED)

    async def status(self) -> CommandResult:
        """Query the relay without taking the gate."""
        self._require_online()
        try:
            relay_on = await self._session.query_state()
        except ConnectionLost as exc:
            self._supervisor.connection_lost(exc)
            raise RelayCommandFailed(exc.reason) from exc
        except RelayCommandFailed:
            raise
        except Exception as exc:
            raise RelayCommandFailed(str(exc) or type(exc).__name__) from exc
        state = DoorState.from_relay(relay_on)
        logger.debug("Relay status: %s", state.value)
        return CommandResult(action=CommandAction.STATUS, state=state)

    async def _auto_lock(self) -> None:
        await self._switch(False)
        self._believed = DoorState.LOCKED

