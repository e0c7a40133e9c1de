"""
Door endpoints.

POST /unlock
    Unlock the door for the configured duration (or ``duration`` ms from the
    request body); the relay re-locks on its own afterwards.

POST /lock
    Lock the door immediately, cancelling any pending auto-lock.

GET /status
    Live relay state plus server uptime.

Error mapping
-------------
- ``RelayOffline``       → 503
- ``RelayBusy``          → 503
- ``RelayCommandFailed`` → 500
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.deps import get_relay, require_token
from app.config import settings
from app.relay.errors import RelayBusy, RelayError, RelayOffline
from app.relay.manager import RelayManager
from app.relay.models import CommandAction

logger = logging.getLogger(__name__)

router = APIRouter()


class UnlockRequest(BaseModel):
    duration: int | None = Field(
        default=None, ge=100, le=60000, description="Unlock window in milliseconds"
    )


class UnlockResponse(BaseModel):
    success: bool
    message: str
    state: str
    duration: int
    timestamp: str


class LockResponse(BaseModel):
    success: bool
    message: str
    state: str
    timestamp: str


class RelayInfo(BaseModel):
    state: str | None = None
    online: bool
    ip: str | None = None
    busy: bool = False
    error: str | None = None


class ServerInfo(BaseModel):
    status: str
    uptime: float | None = None
    port: int


class StatusResponse(BaseModel):
    success: bool
    relay: RelayInfo
    server: ServerInfo
    timestamp: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _status_code(exc: RelayError) -> int:
    if isinstance(exc, (RelayOffline, RelayBusy)):
        return 503
    return 500


@router.post("/unlock", response_model=UnlockResponse)
async def unlock_door(
    body: UnlockRequest | None = Body(default=None),
    relay: RelayManager = Depends(get_relay),
    _auth: None = Depends(require_token),
) -> UnlockResponse:
    """
    Unlock the door.  The door re-locks automatically once ``duration`` ms
    have elapsed; further unlocks are rejected with **503** until then.
    """
    duration = body.duration if body else None
    logger.info("Unlock request received")
    try:
        result = await relay.execute(CommandAction.UNLOCK, duration)
    except RelayError as exc:
        logger.error("Unlock failed: %s", exc.reason)
        raise HTTPException(
            status_code=_status_code(exc),
            detail={
                "success": False,
                "message": "Failed to unlock door",
                "error": exc.reason,
            },
        )

    return UnlockResponse(
        success=True,
        message="Door unlocked",
        state=result.state.value,
        duration=result.duration_ms,
        timestamp=_now(),
    )


@router.post("/lock", response_model=LockResponse)
async def lock_door(
    relay: RelayManager = Depends(get_relay),
    _auth: None = Depends(require_token),
) -> LockResponse:
    """Lock the door now.  Always wins over a pending auto-lock."""
    logger.info("Lock request received")
    try:
        result = await relay.execute(CommandAction.LOCK)
    except RelayError as exc:
        logger.error("Lock failed: %s", exc.reason)
        raise HTTPException(
            status_code=_status_code(exc),
            detail={
                "success": False,
                "message": "Failed to lock door",
                "error": exc.reason,
            },
        )

    return LockResponse(
        success=True,
        message="Door locked",
        state=result.state.value,
        timestamp=_now(),
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(relay: RelayManager = Depends(get_relay)):
    """
    Query the relay.  Allowed while an unlock is in progress.

    When the relay is offline (or the query fails) the same envelope is
    returned with ``success=false``, ``relay.online=false`` and status
    **503** / **500**.
    """
    ip = relay.identity.address
    try:
        result = await relay.execute(CommandAction.STATUS)
    except RelayError as exc:
        logger.warning("Status check failed: %s", exc.reason)
        payload = StatusResponse(
            success=False,
            relay=RelayInfo(
                online=relay.is_online(),
                ip=ip,
                busy=relay.gate.busy,
                error=exc.reason,
            ),
            server=ServerInfo(status="online", port=settings.api_port),
            timestamp=_now(),
        )
        return JSONResponse(status_code=_status_code(exc), content=payload.model_dump())

    return StatusResponse(
        success=True,
        relay=RelayInfo(
            state=result.state.value,
            online=result.online,
            ip=ip,
            busy=relay.gate.busy,
        ),
        server=ServerInfo(
            status="online",
            uptime=round(relay.uptime, 1),
            port=settings.api_port,
        ),
        timestamp=_now(),
    )
