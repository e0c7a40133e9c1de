"""
Device session — the live connection to the Tuya WiFi relay.

The LAN protocol (framing, encryption, sequence numbers) is handled by
``tinytuya``.  Its API is blocking, so every call is pushed to a worker thread
and bounded with ``asyncio.wait_for``.  A single ``asyncio.Lock`` guards the
socket: heartbeats from the supervisor, status queries and lock/unlock
commands never interleave on the wire.

Usage
-----
    session = TuyaDeviceSession(identity, timeout=10.0)
    await session.connect()
    await session.send_command(True)      # relay on  -> door unlocked
    relay_on = await session.query_state()
    await session.disconnect()
"""

import asyncio
import logging
from typing import Any, Callable

import tinytuya

from app.relay.errors import ConnectionLost, RelayCommandFailed
from app.relay.models import RelayIdentity

logger = logging.getLogger(__name__)

# tinytuya error codes that mean the link itself is gone:
# 901 connect failed, 902 timeout, 905 device offline, 914 wrong key/version.
_TRANSPORT_ERRORS = frozenset({"901", "902", "905", "914"})


def _check_response(response: Any, what: str) -> Any:
    """Raise if *response* is one of tinytuya's error dicts."""
    if isinstance(response, dict) and "Error" in response:
        code = str(response.get("Err", ""))
        reason = f"{what} failed: {response['Error']} (code {code or '?'})"
        if code in _TRANSPORT_ERRORS:
            raise ConnectionLost(reason)
        raise RelayCommandFailed(reason)
    return response


class TuyaDeviceSession:
    """Persistent session against one relay."""

    def __init__(self, identity: RelayIdentity, timeout: float = 10.0) -> None:
        self._identity = identity
        self._timeout = timeout
        self._device: tinytuya.OutletDevice | None = None
        self._io_lock = asyncio.Lock()

    @property
    def identity(self) -> RelayIdentity:
        return self._identity

    @property
    def connected(self) -> bool:
        return self._device is not None

    def bind(self, identity: RelayIdentity) -> None:
        """Point the session at a new relay.  Call only while disconnected."""
        if self._device is not None:
            raise RuntimeError("Cannot rebind a connected session")
        self._identity = identity

    def _open_device(self) -> tinytuya.OutletDevice:
        identity = self._identity
        device = tinytuya.OutletDevice(
            dev_id=identity.device_id,
            address=identity.address,
            local_key=identity.local_key,
            version=float(identity.version),
        )
        device.set_socketPersistent(True)
        device.set_socketTimeout(self._timeout)
        device.set_socketRetryLimit(1)
        return device

    async def _call(
        self,
        device: tinytuya.OutletDevice | None,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Run a blocking tinytuya call in a worker thread.

        The caller holds ``_io_lock``; it is not given up before the worker
        thread has returned, even on timeout or cancellation, so two threads
        never use the socket at once.  On timeout *device* is closed to
        unblock the worker.
        """
        worker = asyncio.ensure_future(asyncio.to_thread(fn, *args, **kwargs))
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            if not worker.done():
                self._abort(device)
                await self._settle(worker)
                raise ConnectionLost(
                    f"Relay did not answer within {self._timeout:.0f}s"
                ) from exc
            raise ConnectionLost(f"Relay I/O error: {exc}") from exc
        except asyncio.CancelledError:
            await self._settle(worker)
            raise
        except OSError as exc:
            raise ConnectionLost(f"Relay I/O error: {exc}") from exc

    def _abort(self, device: tinytuya.OutletDevice | None) -> None:
        if device is None:
            return
        if device is self._device:
            self._device = None
        try:
            device.close()
        except Exception as exc:
            logger.debug("Ignoring error while aborting relay socket: %s", exc)

    @staticmethod
    async def _settle(worker: asyncio.Future) -> None:
        """Wait for *worker* to finish, riding out further cancellations."""
        while not worker.done():
            try:
                await asyncio.wait({worker})
            except asyncio.CancelledError:
                continue
        if not worker.cancelled():
            worker.exception()


    async def connect(self) -> None:
        """Open the socket and confirm the relay answers a status request."""
        async with self._io_lock:
            if self._device is not None:
                return
            identity = self._identity
            logger.debug(
                "Connecting to relay %s at %s (v%s)",
                identity.device_id,
                identity.address,
                identity.version,
            )
            device = await self._call(None, self._open_device)
            try:
                response = await self._call(device, device.status)
                _check_response(response, "Handshake")
            except (Exception, asyncio.CancelledError):
                await asyncio.to_thread(device.close)
                raise
            self._device = device

    async def disconnect(self) -> None:
        async with self._io_lock:
            device, self._device = self._device, None
            if device is not None:
                await asyncio.to_thread(device.close)

    def _require_device(self) -> tinytuya.OutletDevice:
        if self._device is None:
            raise ConnectionLost("Relay session is not connected")
        return self._device

    async def send_command(self, turn_on: bool) -> None:
        """Switch the relay on (unlock) or off (lock)."""
        async with self._io_lock:
            device = self._require_device()
            dps = self._identity.dps_index
            if turn_on:
                response = await self._call(device, device.turn_on, switch=dps)
            else:
                response = await self._call(device, device.turn_off, switch=dps)
            _check_response(response, "Turn on" if turn_on else "Turn off")

    async def query_state(self) -> bool:
        """Return ``True`` if the relay is currently on."""
        async with self._io_lock:
            device = self._require_device()
            response = _check_response(
                await self._call(device, device.status), "Status"
            )
            dps = (response or {}).get("dps", {})
            value = dps.get(str(self._identity.dps_index))
            if value is None:
                raise RelayCommandFailed(
                    f"Status response has no data point {self._identity.dps_index}"
                )
            return bool(value)

    async def heartbeat(self) -> None:
        """Cheap liveness probe used by the connection supervisor."""
        async with self._io_lock:
            device = self._require_device()
            _check_response(await self._call(device, device.heartbeat), "Heartbeat")
