"""
Relay configuration endpoints.

GET /config
    Current relay identity (the local key is never returned) and unlock policy.

PUT /config
    Change identity fields and/or the unlock duration.  A changed identity
    tears down the relay session and reconnects to the new device.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import get_relay, require_token
from app.config import settings
from app.relay.manager import RelayManager

logger = logging.getLogger(__name__)

router = APIRouter()


class ConfigUpdate(BaseModel):
    device_id: str | None = None
    local_key: str | None = None
    local_ip: str | None = None
    version: str | None = None
    unlock_duration: int | None = Field(default=None, ge=100, le=60000)


class ConfigResponse(BaseModel):
    success: bool
    config: dict[str, Any]
    server: dict[str, Any]
    timestamp: str
    reconnecting: bool = False


def _config_response(relay: RelayManager, reconnecting: bool = False) -> ConfigResponse:
    return ConfigResponse(
        success=True,
        config=relay.identity.public_dict(),
        server={
            "port": settings.api_port,
            "unlock_duration": relay.gate.unlock_duration_ms,
            "uptime": round(relay.uptime, 1),
        },
        timestamp=datetime.now(timezone.utc).isoformat(),
        reconnecting=reconnecting,
    )


@router.get("/config", response_model=ConfigResponse)
def get_config(relay: RelayManager = Depends(get_relay)) -> ConfigResponse:
    return _config_response(relay)


@router.put("/config", response_model=ConfigResponse)
async def update_config(
    data: ConfigUpdate,
    relay: RelayManager = Depends(get_relay),
    _auth: None = Depends(require_token),
) -> ConfigResponse:
    """
    Update the relay configuration.

    Blank strings are ignored.  At least one field must be provided.
    """
    values = data.model_dump(exclude_none=True)
    if not any(str(value).strip() for value in values.values()):
        raise HTTPException(status_code=400, detail="No configuration fields provided")

    def _clean(value: str | None) -> str | None:
        return value.strip() if value and value.strip() else None

    changed = await relay.update_config(
        device_id=_clean(data.device_id),
        local_key=_clean(data.local_key),
        local_ip=_clean(data.local_ip),
        version=_clean(data.version),
        unlock_duration_ms=data.unlock_duration,
    )
    if changed:
        logger.info("Relay configuration updated — reconnecting")
    return _config_response(relay, reconnecting=changed)
