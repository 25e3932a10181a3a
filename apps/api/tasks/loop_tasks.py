"""
Celery tasks for loop capture.

Ingestion enqueues one analysis per newly created run; replays never enqueue.
"""
import asyncio
import logging
from typing import Dict

from celery import Task

from tasks import celery_app
from core.logging import run_fields
from services.loop_analysis import analyze_run_loop
from services.loop_store import get_loop_store
from services.run_store import get_run_store

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.analyze_run_loop", bind=True)
def analyze_run_loop_task(self: Task, run_id: str) -> Dict:
    """
    Background task to detect a run's loop and store its captured cells.

    Area fill is bounded by AREA_RESOLVE_TIMEOUT_S; a timeout is reported as
    an error result, not retried.
    """
    try:
        row = asyncio.run(analyze_run_loop(run_id, get_run_store(), get_loop_store()))
    except asyncio.TimeoutError:
        logger.error(f"Loop analysis timed out for run {run_id}", extra=run_fields(run_id))
        return {"status": "error", "run_id": run_id, "error": "timeout"}

    if row is None:
        return {"status": "no_loop", "run_id": run_id}

    return {
        "status": "success",
        "run_id": run_id,
        "cycle_key": row.cycle_key,
        "enclosed_count": len(row.enclosed_hexes or []),
    }


def enqueue_loop_analysis(run_id: str) -> bool:
    """Best-effort enqueue; the run is already stored, so a broker outage must not fail the upload."""
    try:
        analyze_run_loop_task.delay(run_id)
        return True
    except Exception as e:
        logger.warning(f"Failed to enqueue loop analysis for run {run_id}: {e}")
        return False
