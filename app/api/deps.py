"""
Shared FastAPI dependencies.
"""

import hmac
import logging

from fastapi import Header, HTTPException, Request

from app.config import settings
from app.relay.manager import RelayManager

logger = logging.getLogger(__name__)


def get_relay(request: Request) -> RelayManager:
    """Return the process-wide ``RelayManager`` created by the lifespan."""
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(
            status_code=503,
            detail={
                "success": False,
                "message": "Relay is not initialised",
                "error": "Relay manager not started",
            },
        )
    return relay


def require_token(
    x_api_token: str | None = Header(default=None, alias="x-api-token"),
) -> None:
    """
    FastAPI dependency guarding the mutating endpoints.

    When ``API_TOKEN`` is unset every request passes.  Otherwise the
    ``x-api-token`` header must match it; raises **401** if it is missing or
    wrong.
    """
    expected = settings.api_token
    if not expected:
        return

    if not x_api_token:
        logger.warning("Missing x-api-token header")
    elif hmac.compare_digest(x_api_token, expected):
        return
    else:
        logger.warning("Invalid x-api-token")

    raise HTTPException(
        status_code=401,
        detail={"success": False, "message": "Invalid or missing token"},
    )
