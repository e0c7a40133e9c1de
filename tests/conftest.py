"""
Shared test doubles for the relay core.
"""

import asyncio

from app.relay.errors import ConnectionLost
from app.relay.models import RelayIdentity

IDENTITY = RelayIdentity(device_id="dev-1", local_key="k" * 16, address="10.0.0.2")


class FakeSession:
    """In-memory stand-in for ``TuyaDeviceSession``."""

    def __init__(self, identity: RelayIdentity = IDENTITY, fail_connects: int = 0):
        self.identity = identity
        self.fail_connects = fail_connects
        self.connect_attempts = 0
        self.connected = False
        self.relay_on = False
        self.commands: list[bool] = []
        self.status_queries = 0
        self.command_error: Exception | None = None
        self.status_error: Exception | None = None
        self.command_delay = 0.0
        self.heartbeat_error: Exception | None = None

    def bind(self, identity: RelayIdentity) -> None:
        self.identity = identity

    async def connect(self) -> None:
        self.connect_attempts += 1
        if self.connect_attempts <= self.fail_connects:
            raise ConnectionLost("connection refused")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def send_command(self, turn_on: bool) -> None:
        self.commands.append(turn_on)
        if self.command_delay:
            await asyncio.sleep(self.command_delay)
        if self.command_error is not None:
            raise self.command_error
        self.relay_on = turn_on

    async def query_state(self) -> bool:
        self.status_queries += 1
        if self.status_error is not None:
            raise self.status_error
        return self.relay_on

    async def heartbeat(self) -> None:
        if self.heartbeat_error is not None:
            raise self.heartbeat_error


class StubSupervisor:
    """Minimal supervisor: fixed online flag, records reported losses."""

    def __init__(self, online: bool = True):
        self.online = online
        self.lost: list[str] = []

    def is_online(self) -> bool:
        return self.online

    def connection_lost(self, reason: object) -> None:
        self.lost.append(str(reason))


async def wait_for(predicate, timeout: float = 1.0, interval: float = 0.005) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


def mock_relay(online: bool = True, busy: bool = False):
    """A ``RelayManager`` mock suitable for ``app.dependency_overrides``."""
    from unittest.mock import AsyncMock, MagicMock

    from app.relay.models import ConnectionState

    relay = MagicMock()
    relay.identity = IDENTITY
    relay.uptime = 42.0
    relay.is_online.return_value = online
    relay.connection_state = (
        ConnectionState.CONNECTED if online else ConnectionState.DISCONNECTED
    )
    relay.gate.busy = busy
    relay.gate.unlock_duration_ms = 3000
    relay.execute = AsyncMock()
    relay.update_config = AsyncMock(return_value=False)
    return relay
