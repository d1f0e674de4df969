import os
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram
import uvicorn

from pulse.core.metrics import PROM_REGISTRY
from pulse.core.metrics_store import log_json, set_trace_context
from pulse.routes import health, metrics
from pulse.routes import pulse as pulse_routes

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=PROM_REGISTRY,
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    registry=PROM_REGISTRY,
)

app = FastAPI(title="Market Pulse API")


@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id") or uuid.uuid4().hex[:16]
    request_id = uuid.uuid4().hex[:8]
    set_trace_context(trace_id, request_id)
    request.state.trace_id = trace_id
    request.state.request_id = request_id

    start_time = time.time()
    log_json(
        "http.request.start",
        method=str(request.method),
        path=str(request.url.path),
        query=str(request.url.query) if request.url.query else None,
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        log_json(
            "http.request.error",
            level="error",
            method=str(request.method),
            path=str(request.url.path),
            error=str(e)[:200],
            duration_ms=duration_ms,
        )
        http_requests_total.labels(
            method=str(request.method), endpoint=str(request.url.path), status_code="500"
        ).inc()
        raise

    # Label by route template so topic keys do not explode cardinality
    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or str(request.url.path)
    elapsed = time.time() - start_time
    log_json(
        "http.request.end",
        method=str(request.method),
        path=str(request.url.path),
        status=response.status_code,
        duration_ms=int(elapsed * 1000),
    )
    http_requests_total.labels(
        method=str(request.method), endpoint=endpoint, status_code=str(response.status_code)
    ).inc()
    http_request_duration_seconds.labels(method=str(request.method), endpoint=endpoint).observe(elapsed)

    response.headers["X-Trace-Id"] = trace_id
    response.headers["X-Request-Id"] = request_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(pulse_routes.router)


@app.get("/")
def root():
    return {"message": "Market Pulse API"}


def serve():
    """Run the API with uvicorn; API_HOST / API_PORT override the bind address"""
    uvicorn.run(
        "pulse.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
    )


if __name__ == "__main__":
    serve()
