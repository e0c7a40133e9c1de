# Relay connection & command serialization
from app.relay.errors import (
    ConnectionLost,
    RelayBusy,
    RelayCommandFailed,
    RelayConfigError,
    RelayError,
    RelayOffline,
)
from app.relay.models import (
    CommandAction,
    CommandResult,
    ConnectionState,
    DoorState,
    GateState,
    RelayIdentity,
)

__all__ = [
    "ConnectionLost",
    "RelayBusy",
    "RelayCommandFailed",
    "RelayConfigError",
    "RelayError",
    "RelayOffline",
    "CommandAction",
    "CommandResult",
    "ConnectionState",
    "DoorState",
    "GateState",
    "RelayIdentity",
]
