"""Celery application configuration."""
from celery import Celery

from webhook_engine.config import get_settings

settings = get_settings()

celery_app = Celery(
    "webhook_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["webhook_engine.tasks.webhook_tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "process-webhook-queue": {
            "task": "webhook_engine.tasks.webhook_tasks.process_webhook_queue",
            "schedule": settings.webhook_queue_interval_seconds,
        },
        "reclaim-stale-deliveries": {
            "task": "webhook_engine.tasks.webhook_tasks.reclaim_stale_deliveries",
            "schedule": settings.webhook_reclaim_interval_seconds,
        },
    },
)
