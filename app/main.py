"""
Door Relay API — FastAPI application entry point.

Run with:
    uvicorn app.main:app --host 0.0.0.0 --port 3000
or:
    door-relay-api
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import config as config_router
from app.api.routes import door as door_router
from app.api.routes import status as status_router
from app.config import load_identity, settings
from app.relay.manager import RelayManager

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# tinytuya logs every frame at DEBUG; keep it quiet unless something breaks.
logging.getLogger("tinytuya").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the relay supervisor on startup; lock and disconnect on shutdown."""
    identity = load_identity(settings)
    relay = RelayManager.from_settings(settings, identity)
    app.state.relay = relay
    relay.start()
    logger.info(
        "Relay server ready (relay %s, unlock duration %d ms)",
        identity.address,
        settings.door_unlock_duration,
    )
    try:
        yield
    finally:
        await relay.stop()
        app.state.relay = None
        logger.info("Relay server stopped")


app = FastAPI(
    title="Door Relay API",
    description="HTTP API for a WiFi relay driving a magnetic door lock.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(status_router.router, tags=["health"])
app.include_router(door_router.router, tags=["door"])
app.include_router(config_router.router, tags=["config"])


def run() -> None:
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
