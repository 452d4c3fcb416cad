from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .application import start_bridge, stop_bridge
from .endpoints import health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not start_bridge():
        logger.error("[APP] Bridge did not start; /ready will report 503")
    try:
        yield
    finally:
        stop_bridge()


app = FastAPI(title="Telemetry Bridge", version="0.1.0", lifespan=lifespan)
app.include_router(health_router)
