import os

from celery import Celery

# Single source of truth for broker/backend
redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")

app = Celery("worker", broker=redis_url, backend=redis_url, include=["worker.jobs.pulse_snapshots"])
app.config_from_object("worker.celeryconfig")

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_acks_late=True,
    task_acks_on_failure_or_timeout=True,
    task_reject_on_worker_lost=True,
)


if __name__ == "__main__":
    print("Celery app loaded:", app)
