"""
Health check endpoints.

- GET /api/health        cheap: process alive, version, uptime
- GET /api/health/deep   database reachable, pipeline running, queue depth
"""
import logging
import time
from datetime import datetime, timezone

import sqlalchemy as sa
from fastapi import APIRouter

from insights import __version__
from insights.core.database import get_engine
from insights.core.structured_logging import SERVICE_NAME
from insights.services.pipeline import current_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()

_startup_time = time.time()


@router.get("/health")
async def health_check():
    """Cheap health check, no I/O."""
    return {
        "status": "ok",
        "version": __version__,
        "service": SERVICE_NAME,
        "uptime_s": round(time.time() - _startup_time, 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
def deep_health_check():
    components = {}

    try:
        with get_engine().connect() as conn:
            conn.execute(sa.text("SELECT 1"))
        components["database"] = {"status": "ok"}
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        components["database"] = {"status": "down", "error": type(e).__name__}

    pipeline = current_pipeline()
    if pipeline is None:
        components["analysis"] = {"status": "not_configured"}
    else:
        components["analysis"] = {
            "status": "ok",
            "provider": pipeline.gateway.provider.get_model_info(),
            "queue_depth": pipeline.orchestrator.queue_depth,
        }

    overall = "ok" if all(c["status"] == "ok" for c in components.values()) else "degraded"
    return {"status": overall, "components": components}
