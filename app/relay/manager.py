"""
Relay manager — the one object per process that owns the relay.

It wires the device session, connection supervisor and command gate together
and is stored on ``app.state.relay`` by the FastAPI lifespan.  Routes reach it
through ``app.api.deps.get_relay``.
"""

import logging
import time
from dataclasses import replace

from app.config import Settings
from app.relay.device import TuyaDeviceSession
from app.relay.errors import RelayError
from app.relay.gate import CommandGate
from app.relay.models import CommandAction, CommandResult, ConnectionState, RelayIdentity
from app.relay.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


class RelayManager:
    def __init__(
        self,
        session: TuyaDeviceSession,
        *,
        unlock_duration_ms: int = 3000,
        reconnect_delay: float = 5.0,
        heartbeat_interval: float = 10.0,
        settle_delay: float = 1.0,
    ) -> None:
        self.session = session
        self.supervisor = ConnectionSupervisor(
            session,
            reconnect_delay=reconnect_delay,
            heartbeat_interval=heartbeat_interval,
        )
        self.gate = CommandGate(session, self.supervisor, unlock_duration_ms)
        self._settle_delay = settle_delay
        self._started_at = time.monotonic()
        self.supervisor.add_listener(self._on_availability)

    @classmethod
    def from_settings(cls, cfg: Settings, identity: RelayIdentity) -> "RelayManager":
        session = TuyaDeviceSession(identity, timeout=cfg.command_timeout)
        return cls(
            session,
            unlock_duration_ms=cfg.door_unlock_duration,
            reconnect_delay=cfg.reconnect_delay,
            heartbeat_interval=cfg.heartbeat_interval,
            settle_delay=cfg.identity_settle_delay,
        )

    @property
    def identity(self) -> RelayIdentity:
        return self.session.identity

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started_at

    @property
    def connection_state(self) -> ConnectionState:
        return self.supervisor.state

    def is_online(self) -> bool:
        return self.supervisor.is_online()

    @staticmethod
    def _on_availability(online: bool) -> None:
        if online:
            logger.info("Relay is online")
        else:
            logger.warning("Relay is offline")

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        self._started_at = time.monotonic()
        self.supervisor.start()

    async def stop(self) -> None:
        """Lock the door if an auto-lock is still pending, then disconnect."""
        if self.gate.pending_auto_lock is not None:
            try:
                await self.gate.lock()
            except RelayError as exc:
                logger.error("Could not lock door during shutdown: %s", exc.reason)
        await self.supervisor.stop()

    # ── Commands & configuration ─────────────────────────────────────────────

    async def execute(
        self, action: CommandAction, duration_ms: int | None = None
    ) -> CommandResult:
        return await self.gate.execute(action, duration_ms)

    async def update_config(
        self,
        *,
        device_id: str | None = None,
        local_key: str | None = None,
        local_ip: str | None = None,
        version: str | None = None,
        unlock_duration_ms: int | None = None,
    ) -> bool:
        """
        Apply a configuration update.

        Returns ``True`` if the relay identity changed, in which case the
        session is torn down and rebuilt.
        """
        if unlock_duration_ms is not None:
            self.gate.set_unlock_duration(unlock_duration_ms)
            logger.info("Unlock duration set to %d ms", unlock_duration_ms)

        changes = {
            key: value
            for key, value in (
                ("device_id", device_id),
                ("local_key", local_key),
                ("address", local_ip),
                ("version", version),
            )
            if value
        }
        new_identity = replace(self.identity, **changes)
        if new_identity == self.identity:
            return False
        await self.supervisor.rebind(new_identity, settle_delay=self._settle_delay)
        return True
