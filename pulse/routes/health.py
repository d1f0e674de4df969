"""Health and readiness routes"""

import time

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError

from pulse.cache import get_redis_client
from pulse.core.metrics_store import log_json
from pulse.database import with_db

router = APIRouter()


@router.get("/healthz")
def healthz():
    """Health check endpoint for container orchestration"""
    return {"status": "healthy"}


@router.get("/readyz")
def readyz():
    """Readiness probe: DB and Redis must be OK."""
    t0 = time.time()
    try:
        with with_db() as db:
            db.execute(sa_text("SELECT 1")).scalar()
    except (SQLAlchemyError, ValueError) as e:
        log_json(stage="readyz.db.error", level="warning", error=str(e)[:200])
        return Response(content="service unavailable", status_code=503)

    rc = get_redis_client()
    if rc is None:
        log_json(stage="readyz.redis.error", level="warning", error="redis client unavailable")
        return Response(content="service unavailable", status_code=503)

    latency_ms = int((time.time() - t0) * 1000)
    log_json(stage="readyz.ok", operation="readyz", status="ready", latency=latency_ms)
    return JSONResponse(
        {"status": "ready", "latency_ms": latency_ms},
        headers={"Cache-Control": "no-store"},
    )
