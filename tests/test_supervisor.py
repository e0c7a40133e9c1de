"""
Tests for the connection supervisor: connect, retry, loss detection, rebind.
"""

import asyncio

from app.relay.errors import ConnectionLost
from app.relay.models import ConnectionState, RelayIdentity
from app.relay.supervisor import ConnectionSupervisor
from conftest import FakeSession, wait_for


def _supervisor(session: FakeSession, heartbeat: float = 0.02) -> ConnectionSupervisor:
    return ConnectionSupervisor(
        session, reconnect_delay=0.01, heartbeat_interval=heartbeat
    )


def test_start_connects_and_is_idempotent():
    session = FakeSession()
    supervisor = _supervisor(session)

    async def run():
        assert supervisor.is_online() is False
        supervisor.start()
        online = await wait_for(supervisor.is_online)
        supervisor.start()
        await asyncio.sleep(0.03)
        attempts = session.connect_attempts
        await supervisor.stop()
        return online, attempts

    online, attempts = asyncio.run(run())
    assert online is True
    assert attempts == 1
    assert supervisor.state is ConnectionState.DISCONNECTED
    assert session.connected is False


def test_retries_until_connected_and_reports_offline_meanwhile():
    session = FakeSession(fail_connects=3)
    supervisor = _supervisor(session)
    observed: list[bool] = []

    async def run():
        supervisor.start()
        while session.connect_attempts < 3:
            observed.append(supervisor.is_online())
            await asyncio.sleep(0.002)
        online = await wait_for(supervisor.is_online)
        await supervisor.stop()
        return online

    assert asyncio.run(run()) is True
    assert session.connect_attempts == 4
    assert observed and not any(observed)


def test_failed_heartbeat_triggers_reconnect():
    session = FakeSession()
    supervisor = _supervisor(session)
    events: list[bool] = []
    supervisor.add_listener(events.append)

    async def run():
        supervisor.start()
        await wait_for(supervisor.is_online)
        session.heartbeat_error = ConnectionLost("no heartbeat reply")
        await wait_for(lambda: not supervisor.is_online())
        session.heartbeat_error = None
        reconnected = await wait_for(lambda: session.connect_attempts >= 2 and supervisor.is_online())
        await supervisor.stop()
        return reconnected

    assert asyncio.run(run()) is True
    assert events[:3] == [True, False, True]


def test_reported_connection_loss_triggers_reconnect():
    session = FakeSession()
    supervisor = _supervisor(session, heartbeat=5.0)

    async def run():
        supervisor.start()
        await wait_for(supervisor.is_online)
        supervisor.connection_lost(ConnectionLost("socket reset"))
        reconnected = await wait_for(lambda: session.connect_attempts == 2 and supervisor.is_online())
        await supervisor.stop()
        return reconnected

    assert asyncio.run(run()) is True


def test_connection_lost_ignored_while_offline():
    session = FakeSession()
    supervisor = _supervisor(session)

    supervisor.connection_lost("late report")

    assert supervisor.state is ConnectionState.DISCONNECTED
    assert supervisor.running is False


def test_rebind_reconnects_to_new_identity():
    session = FakeSession()
    supervisor = _supervisor(session)
    new_identity = RelayIdentity(device_id="dev-2", local_key="x" * 16, address="10.0.0.9")

    async def run():
        supervisor.start()
        await wait_for(supervisor.is_online)
        await supervisor.rebind(new_identity, settle_delay=0.01)
        offline_right_after = not supervisor.is_online()
        online = await wait_for(supervisor.is_online)
        await supervisor.stop()
        return offline_right_after, online

    offline_right_after, online = asyncio.run(run())
    assert offline_right_after is True
    assert online is True
    assert session.identity == new_identity
    assert session.connect_attempts == 2


def test_listener_errors_do_not_stop_supervisor():
    session = FakeSession()
    supervisor = _supervisor(session)

    def broken(_online: bool) -> None:
        raise RuntimeError("listener blew up")

    supervisor.add_listener(broken)

    async def run():
        supervisor.start()
        online = await wait_for(supervisor.is_online)
        await supervisor.stop()
        return online

    assert asyncio.run(run()) is True
