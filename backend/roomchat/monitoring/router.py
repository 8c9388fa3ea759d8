"""Health and metrics endpoints.

Endpoints:
    GET /health          - Health status with live chat snapshot
    GET /metrics         - Raw counters
    GET /api/performance - Process resource usage
    GET /ready           - Readiness probe
    GET /alive           - Liveness probe
"""
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from roomchat.chat.manager import manager

from .service import monitoring

router = APIRouter(tags=["monitoring"])


@router.get("/health")
async def health() -> dict:
    return monitoring.get_health_status(manager.controller.snapshot())


@router.get("/metrics")
async def metrics() -> dict:
    return monitoring.get_metrics()


@router.get("/api/performance")
async def performance() -> dict:
    return monitoring.get_performance_metrics()


@router.get("/ready")
async def ready() -> JSONResponse:
    """Ready once the chat state has been seeded."""
    is_ready = bool(manager.controller.state.rooms.rooms())
    return JSONResponse(
        {"ready": is_ready, "timestamp": datetime.now(timezone.utc).isoformat()},
        status_code=200 if is_ready else 503,
    )


@router.get("/alive")
async def alive() -> dict:
    return {"alive": True, "timestamp": datetime.now(timezone.utc).isoformat()}
