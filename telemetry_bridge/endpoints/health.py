"""Health and readiness endpoints."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..application import get_bridge

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: always returns ok if process is running."""
    return {"status": "ok"}


@router.get("/ready")
def ready():
    """Readiness probe: MQTT suscrito y ambos sinks inicializados."""
    bridge = get_bridge()
    if bridge is None:
        raise HTTPException(status_code=503, detail="not started")

    health = bridge.health_check()
    if not health["healthy"]:
        raise HTTPException(status_code=503, detail=health)
    return {"status": "ready", **health}


@router.get("/stats")
def stats():
    """Contadores del dispatcher y del suscriptor."""
    bridge = get_bridge()
    if bridge is None:
        return {"running": False}
    return bridge.stats


@router.get("/metrics")
def metrics():
    """Métricas Prometheus en formato texto."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
