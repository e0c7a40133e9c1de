"""
Relay data model: identity, connection/gate/door states and command results.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class RelayIdentity:
    """Immutable snapshot used to (re)establish a device session."""

    device_id: str
    local_key: str
    address: str
    version: str = "3.5"
    dps_index: int = 1

    def is_complete(self) -> bool:
        return bool(self.device_id and self.local_key and self.address)

    def public_dict(self) -> dict[str, Any]:
        """Identity fields safe to expose over HTTP (the key is never included)."""
        return {
            "device_id": self.device_id,
            "local_ip": self.address,
            "version": self.version,
            "local_key_configured": bool(self.local_key),
        }


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class GateState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


class DoorState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"

    @classmethod
    def from_relay(cls, relay_on: bool) -> "DoorState":
        # Relay energised releases the magnet.
        return cls.UNLOCKED if relay_on else cls.LOCKED


class CommandAction(str, Enum):
    UNLOCK = "unlock"
    LOCK = "lock"
    STATUS = "status"


@dataclass(frozen=True)
class CommandResult:
    action: CommandAction
    state: DoorState
    online: bool = True
    duration_ms: int | None = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PendingAutoLock:
    """A scheduled auto-lock. At most one is alive at any time."""

    task: asyncio.Task
    duration_ms: int
    fire_at: datetime
    deadline: float
