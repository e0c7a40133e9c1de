"""
End-to-end scenarios through the RelayManager with an in-memory session.
"""

import asyncio

import pytest

from app.relay.errors import RelayBusy, RelayOffline
from app.relay.manager import RelayManager
from app.relay.models import CommandAction, ConnectionState, DoorState
from conftest import FakeSession, wait_for


def _manager(session: FakeSession, duration_ms: int = 60) -> RelayManager:
    return RelayManager(
        session,
        unlock_duration_ms=duration_ms,
        reconnect_delay=0.01,
        heartbeat_interval=0.05,
        settle_delay=0.01,
    )


def test_unlock_status_autolock_scenario():
    """Unlock → status says unlocked → after the window status says locked."""
    session = FakeSession()
    relay = _manager(session)

    async def run():
        relay.start()
        await wait_for(relay.is_online)
        unlocked = await relay.execute(CommandAction.UNLOCK)
        during = await relay.execute(CommandAction.STATUS)
        await asyncio.sleep(0.15)
        after = await relay.execute(CommandAction.STATUS)
        busy_after = relay.gate.busy
        await relay.stop()
        return unlocked, during, after, busy_after

    unlocked, during, after, busy_after = asyncio.run(run())
    assert unlocked.duration_ms == 60
    assert during.state is DoorState.UNLOCKED and during.online is True
    assert after.state is DoorState.LOCKED
    assert busy_after is False
    assert session.commands == [True, False]


def test_second_unlock_before_autolock_is_busy():
    session = FakeSession()
    relay = _manager(session, duration_ms=3000)

    async def run():
        relay.start()
        await wait_for(relay.is_online)
        first = await relay.execute(CommandAction.UNLOCK)
        with pytest.raises(RelayBusy):
            await relay.execute(CommandAction.UNLOCK)
        await relay.stop()
        return first

    first = asyncio.run(run())
    assert first.duration_ms == 3000
    # stop() locks the door because an auto-lock was still pending.
    assert session.commands == [True, False]


def test_commands_while_connecting_are_offline():
    session = FakeSession(fail_connects=10_000)
    relay = _manager(session)

    async def run():
        relay.start()
        await asyncio.sleep(0.03)
        with pytest.raises(RelayOffline):
            await relay.execute(CommandAction.UNLOCK)
        with pytest.raises(RelayOffline):
            await relay.execute(CommandAction.STATUS)
        state = relay.connection_state
        await relay.stop()
        return state

    state = asyncio.run(run())
    assert state in (ConnectionState.CONNECTING, ConnectionState.DISCONNECTED)
    assert session.commands == []
    assert session.connect_attempts > 1


def test_update_config_rebinds_only_on_identity_change():
    session = FakeSession()
    relay = _manager(session)

    async def run():
        relay.start()
        await wait_for(relay.is_online)
        unchanged = await relay.update_config(unlock_duration_ms=4000)
        changed = await relay.update_config(local_ip="10.0.0.77")
        online = await wait_for(relay.is_online)
        await relay.stop()
        return unchanged, changed, online

    unchanged, changed, online = asyncio.run(run())
    assert unchanged is False
    assert changed is True
    assert online is True
    assert relay.gate.unlock_duration_ms == 4000
    assert session.identity.address == "10.0.0.77"
    assert session.identity.device_id == "dev-1"
    assert session.connect_attempts == 2


def test_stop_locks_door_when_auto_lock_pending():
    session = FakeSession()
    relay = _manager(session, duration_ms=5000)

    async def run():
        relay.start()
        await wait_for(relay.is_online)
        await relay.execute(CommandAction.UNLOCK)
        await relay.stop()

    asyncio.run(run())
    assert session.commands == [True, False]
    assert session.relay_on is False
    assert relay.gate.pending_auto_lock is None
    assert relay.gate.busy is False
    assert session.connected is False


def test_stop_without_pending_auto_lock_sends_nothing():
    session = FakeSession()
    relay = _manager(session)

    async def run():
        relay.start()
        await wait_for(relay.is_online)
        await relay.stop()

    asyncio.run(run())
    assert session.commands == []
