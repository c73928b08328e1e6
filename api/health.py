"""Health check and metrics snapshot."""

from fastapi import APIRouter

from config.settings import get_settings
from services.metrics import get_metrics_collector
from services.session_registry import get_session_registry

router = APIRouter(prefix="/api", tags=["ops"])


@router.get("/health")
async def health():
    settings = get_settings()
    return {
        "status": "healthy",
        "repository": settings.repository_type,
        "activeSessions": get_session_registry().size,
    }


@router.get("/metrics")
async def metrics():
    """Turn and envelope counters since process start."""
    return get_metrics_collector().snapshot()
