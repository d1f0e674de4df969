"""
Metrics endpoint for Prometheus scraping.

Controlled by METRICS_EXPOSED environment variable.
"""

import os

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from pulse.core.metrics import PROM_REGISTRY
from pulse.core.metrics_store import log_json

router = APIRouter()


@router.get("/metrics")
def metrics_endpoint():
    """Returns 404 unless METRICS_EXPOSED=true."""
    if os.getenv("METRICS_EXPOSED", "true").lower() != "true":
        log_json(stage="metrics.denied", reason="METRICS_EXPOSED=false")
        return Response(content="Not Found", status_code=404)
    return PlainTextResponse(content=generate_latest(PROM_REGISTRY), media_type=CONTENT_TYPE_LATEST)
