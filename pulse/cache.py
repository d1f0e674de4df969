"""Redis client shared by readiness checks and the Celery broker settings"""

import os
import threading
from typing import Optional

import redis

from pulse.core.metrics_store import log_json

_redis_client: Optional["redis.Redis"] = None
_redis_lock = threading.Lock()


def redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def get_redis_client() -> Optional["redis.Redis"]:
    """
    Get Redis client singleton with thread-safe initialization.

    Returns:
        Redis client if reachable, None otherwise
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    with _redis_lock:
        if _redis_client is not None:
            return _redis_client
        url = redis_url()
        try:
            client = redis.from_url(url, decode_responses=False)
            client.ping()
        except redis.RedisError as e:
            log_json(stage="redis.connect.error", error=str(e)[:200], level="warning")
            return None
        log_json(stage="redis.connect", status="success")
        _redis_client = client
        return _redis_client


def reset_redis_client() -> None:
    global _redis_client
    with _redis_lock:
        _redis_client = None
