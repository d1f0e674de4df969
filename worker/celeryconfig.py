import os

from celery.schedules import crontab

from pulse.core.config import get_config

REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")

broker_url = REDIS_URL
result_backend = REDIS_URL

worker_prefetch_multiplier = int(os.getenv("CELERY_WORKER_PREFETCH", "1"))
worker_concurrency = int(os.getenv("CELERY_CONCURRENCY", "2"))

broker_transport_options = {
    "visibility_timeout": int(os.getenv("CELERY_VISIBILITY_TIMEOUT", "3600")),
}

_cfg = get_config()

beat_schedule = {
    # 06:30 UTC is 01:30 US/Eastern in winter, 02:30 in summer
    "daily_pulse_snapshots": {
        "task": "worker.jobs.pulse_snapshots.daily_pulse_snapshots",
        "schedule": crontab(hour=_cfg.snapshot_cron_hour_utc, minute=_cfg.snapshot_cron_minute),
        "options": {"queue": "pulse"},
    },
}

timezone = "UTC"

task_routes = {
    "worker.jobs.pulse_snapshots.*": {"queue": "pulse"},
}

task_annotations = {
    "worker.jobs.pulse_snapshots.daily_pulse_snapshots": {
        "time_limit": 540,
        "soft_time_limit": 500,
    }
}
