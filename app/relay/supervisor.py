"""
Connection supervisor — background task that keeps the relay session up.

Design
------
- One loop task per process.  It connects, then watches the link: every
  ``heartbeat_interval`` seconds it sends a heartbeat, and it wakes up early
  when a command path reports a transport failure via ``connection_lost()``.
- Any failure (handshake error, I/O error, failed heartbeat, reported loss)
  moves the state to ``DISCONNECTED``, closes the session best-effort and
  retries after a fixed ``reconnect_delay``.  There is no retry cap.
- Failures are only logged.  Callers observe them as ``is_online() == False``.
- ``rebind()`` swaps the relay identity: stop, disconnect, bind, restart after
  a short settle delay.
"""

import asyncio
import logging
from typing import Callable

from app.relay.device import TuyaDeviceSession
from app.relay.models import ConnectionState, RelayIdentity

logger = logging.getLogger(__name__)

AvailabilityListener = Callable[[bool], None]


class ConnectionSupervisor:
    def __init__(
        self,
        session: TuyaDeviceSession,
        *,
        reconnect_delay: float = 5.0,
        heartbeat_interval: float = 10.0,
    ) -> None:
        self._session = session
        self._reconnect_delay = reconnect_delay
        self._heartbeat_interval = heartbeat_interval
        self._state = ConnectionState.DISCONNECTED
        self._task: asyncio.Task | None = None
        self._lost = asyncio.Event()
        self._lost_reason: str = ""
        self._listeners: list[AvailabilityListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_online(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def add_listener(self, listener: AvailabilityListener) -> None:
        """Register a callback invoked with ``True``/``False`` on availability changes."""
        self._listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        was_online = self.is_online()
        self._state = state
        if was_online != self.is_online():
            for listener in list(self._listeners):
                try:
                    listener(self.is_online())
                except Exception as exc:
                    logger.error("Availability listener failed: %s", exc, exc_info=True)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, delay: float = 0.0) -> None:
        """Start the connect loop.  No-op if it is already running."""
        if self.running:
            return
        self._lost.clear()
        self._task = asyncio.create_task(self._run(delay), name="relay_supervisor")

    async def stop(self) -> None:
        """Cancel the loop and close the session."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._safe_disconnect()
        self._set_state(ConnectionState.DISCONNECTED)

    async def rebind(self, identity: RelayIdentity, settle_delay: float = 1.0) -> None:
        """Tear down the current session and reconnect to *identity*."""
        logger.info(
            "Relay identity changed (device %s at %s) — reconnecting",
            identity.device_id,
            identity.address,
        )
        await self.stop()
        self._session.bind(identity)
        self.start(delay=settle_delay)

    def connection_lost(self, reason: object) -> None:
        """Report a transport failure seen outside the loop (e.g. on a command)."""
        if not self.is_online():
            return
        self._lost_reason = str(reason)
        self._lost.set()

    # ── Loop ─────────────────────────────────────────────────────────────────

    async def _safe_disconnect(self) -> None:
        try:
            await self._session.disconnect()
        except Exception as exc:
            logger.debug("Ignoring error while closing relay session: %s", exc)

    async def _watch(self) -> str:
        """Block while the link is healthy; return the reason once it is not."""
        while True:
            try:
                await asyncio.wait_for(
                    self._lost.wait(), timeout=self._heartbeat_interval
                )
                return self._lost_reason or "connection lost"
            except asyncio.TimeoutError:
                pass
            try:
                await self._session.heartbeat()
            except Exception as exc:
                return f"heartbeat failed: {exc}"

    async def _run(self, delay: float) -> None:
        identity = self._session.identity
        logger.info(
            "Relay supervisor starting (device %s at %s)",
            identity.device_id,
            identity.address,
        )
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            while True:
                self._set_state(ConnectionState.CONNECTING)
                self._lost.clear()
                try:
                    await self._session.connect()
                except Exception as exc:
                    self._set_state(ConnectionState.DISCONNECTED)
                    await self._safe_disconnect()
                    logger.warning(
                        "Relay connection failed: %s — retrying in %.0fs",
                        exc,
                        self._reconnect_delay,
                    )
                    await asyncio.sleep(self._reconnect_delay)
                    continue

                self._set_state(ConnectionState.CONNECTED)
                logger.info("Relay connected at %s", self._session.identity.address)

                reason = await self._watch()
                self._set_state(ConnectionState.DISCONNECTED)
                await self._safe_disconnect()
                logger.warning(
                    "Relay disconnected: %s — reconnecting in %.0fs",
                    reason,
                    self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)

        except asyncio.CancelledError:
            logger.info("Relay supervisor cancelled — shutting down")
            self._set_state(ConnectionState.DISCONNECTED)
            raise
