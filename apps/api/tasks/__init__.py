"""
Celery app for background loop analysis.

The API imports this to enqueue; the worker (apps/worker/main.py) imports it
to execute.
"""
from celery import Celery
from core.config import settings

celery_app = Celery(
    "territory_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="loops",
    task_track_started=True,
    # Area fill is CPU-bound; one task at a time per worker process
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    # Hard limit sits above the in-task area resolve timeout
    task_soft_time_limit=int(settings.AREA_RESOLVE_TIMEOUT_S) + 60,
    task_time_limit=int(settings.AREA_RESOLVE_TIMEOUT_S) + 120,
    result_expires=24 * 60 * 60,
)

# Register tasks
from . import loop_tasks  # noqa: E402

__all__ = ["celery_app"]
