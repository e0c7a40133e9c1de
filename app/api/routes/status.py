"""
GET /health — liveness check; GET / — service index.

Neither endpoint touches the command gate or the relay socket.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_relay
from app.relay.manager import RelayManager

router = APIRouter()

SERVICE_NAME = "door-relay-api"
SERVICE_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    status: str
    service: str
    relay_online: bool
    connection: str
    timestamp: str


@router.get("/health", response_model=HealthResponse)
def get_health(relay: RelayManager = Depends(get_relay)) -> HealthResponse:
    """
    Returns ``status=online`` while the server runs, plus the relay link state.

    - **relay_online**: ``true`` when the persistent relay session is up.
    - **connection**: ``disconnected``, ``connecting`` or ``connected``.
    """
    return HealthResponse(
        status="online",
        service=SERVICE_NAME,
        relay_online=relay.is_online(),
        connection=relay.connection_state.value,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/")
def get_index(relay: RelayManager = Depends(get_relay)) -> dict:
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "POST /unlock": "Unlock door for duration (default 3s)",
            "POST /lock": "Lock door immediately",
            "GET /status": "Get relay and server status",
            "GET /config": "Get relay configuration",
            "PUT /config": "Update relay configuration",
            "GET /health": "Health check",
        },
        "relay": {
            "ip": relay.identity.address,
            "device_id": relay.identity.device_id,
        },
    }
