"""
Celery worker entry point for loop analysis.

Run with `celery -A main worker` from this directory, or `python main.py`.
The API package (tasks, services, models) is imported from API_PATH.
"""
import logging
import os
import sys

sys.path.insert(0, os.environ.get("API_PATH", "/api"))

from core.config import settings  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)

celery_app.autodiscover_tasks(["tasks"])


@celery_app.task(name="worker.health_check")
def health_check():
    """Liveness check: confirms the worker can import the API and reach the broker."""
    return {"status": "ok", "loop_capture_enabled": settings.LOOP_MASTER_ENABLED}


if __name__ == "__main__":
    logger.info(f"Starting loop worker (broker={settings.CELERY_BROKER_URL})")
    celery_app.worker_main(["worker", f"--loglevel={settings.LOG_LEVEL}"])
