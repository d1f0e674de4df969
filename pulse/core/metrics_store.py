"""
Structured logging and timing helpers.

Provides:
- log_json: one-line JSON log records with a [JSON] prefix
- timeit: decorator logging elapsed milliseconds for a pulse stage
- trace context (trace_id / request_id) carried in context variables so
  HTTP requests and Celery tasks can correlate their log lines

Usage:
    @timeit("pulse.snapshot.compute")
    def compute(...):
        ...

    log_json("pulse.snapshot.cache_hit", window_days=7, age_minutes=12)
"""

import functools
import json
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Optional

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_trace_id() -> Optional[str]:
    """Get current trace ID from context."""
    return trace_id_var.get()


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_var.get()


def set_trace_context(trace_id: str, request_id: str) -> None:
    """Bind trace and request IDs to the current context."""
    trace_id_var.set(trace_id)
    request_id_var.set(request_id)


def log_json(stage: str, **kv) -> None:
    """
    Emit a structured JSON log line.

    Fixed keys come first (ts_iso, ts_epoch, trace_id, request_id, level,
    stage, message); remaining keyword arguments follow, with None values
    dropped. Values that are not JSON-native are rendered with str().
    """
    now = datetime.now(timezone.utc)

    payload = {
        "ts_iso": now.isoformat(),
        "ts_epoch": int(now.timestamp()),
        "trace_id": kv.pop("trace_id", None) or get_trace_id() or "no-trace",
        "request_id": kv.pop("request_id", None) or get_request_id() or "no-request",
        "level": kv.pop("level", "info"),
        "stage": stage,
        "message": kv.pop("message", f"Event: {stage}"),
    }

    for key, value in kv.items():
        if value is not None:
            payload[key] = value

    print(f"[JSON] {json.dumps(payload, separators=(',', ':'), default=str)}", flush=True)


def timeit(stage: str, backend: Optional[str] = None) -> Callable:
    """
    Decorator logging the wrapped call's duration in milliseconds.

    Logs `stage`, `backend` ("n/a" when unset), `ms` and `ok`; exceptions are
    logged with ok=false and re-raised unchanged.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed_ms = int(round((time.perf_counter() - t0) * 1000))
                log_json(stage=stage, backend=backend or "n/a", ms=elapsed_ms, ok=False, level="error")
                raise
            elapsed_ms = int(round((time.perf_counter() - t0) * 1000))
            log_json(stage=stage, backend=backend or "n/a", ms=elapsed_ms, ok=True)
            return result

        return wrapper

    return decorator
