"""
Runs API Router

Run upload (idempotent by client run id) and read/recompute of the loop a
run captured.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from core.auth import get_current_user_id
from core.exceptions import NotFoundError, PersistenceError
from models import Run
from schemas import RunLoopResponse, RunReceipt, RunSubmission, RunSubmissionResponse
from services.loop_analysis import analyze_run_loop
from services.loop_store import LoopStore, get_loop_store
from services.run_ingestion import RunIngestionGateway
from services.run_store import RunStore, StorageError, get_run_store
from tasks.loop_tasks import enqueue_loop_analysis

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/runs", tags=["runs"])


def get_ingestion_gateway(run_store: RunStore = Depends(get_run_store)) -> RunIngestionGateway:
    return RunIngestionGateway(run_store)


async def _get_owned_run(run_id: str, user_id: str, run_store: RunStore) -> Run:
    try:
        run = await run_store.get_run(run_id)
    except StorageError as e:
        raise PersistenceError(f"Failed to load run: {e}") from e
    # Other users' runs are reported as missing rather than forbidden.
    if run is None or run.user_id != user_id:
        raise NotFoundError("Run", run_id)
    return run


@router.post("", response_model=RunSubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_run(
    payload: RunSubmission,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    gateway: RunIngestionGateway = Depends(get_ingestion_gateway),
):
    """
    Upload a completed run.

    - 201: new run stored (status 'synced' or 'overlapping'); loop analysis is queued
    - 200: this run id was already processed for this user; stored status returned
    - 400: invalid submission, nothing stored
    - 403: run id belongs to another user
    - 503: storage failure, safe to retry
    """
    result = await gateway.submit(user_id, payload)
    receipt = RunReceipt(**result.to_receipt())

    if not result.created:
        response.status_code = status.HTTP_200_OK
        return RunSubmissionResponse(message="Run already processed", data=receipt)

    enqueue_loop_analysis(result.run.id)
    return RunSubmissionResponse(data=receipt)


@router.get("/{run_id}/loop", response_model=RunLoopResponse)
async def get_run_loop(
    run_id: str,
    user_id: str = Depends(get_current_user_id),
    run_store: RunStore = Depends(get_run_store),
    loop_store: LoopStore = Depends(get_loop_store),
):
    """Loop captured by one of the caller's runs."""
    await _get_owned_run(run_id, user_id, run_store)
    try:
        loop = await loop_store.get(run_id)
    except StorageError as e:
        raise PersistenceError(f"Failed to load loop: {e}") from e
    if loop is None:
        raise NotFoundError("Loop", run_id)
    return RunLoopResponse.model_validate(loop)


@router.post("/{run_id}/loop/recompute", response_model=RunLoopResponse)
async def recompute_run_loop(
    run_id: str,
    user_id: str = Depends(get_current_user_id),
    run_store: RunStore = Depends(get_run_store),
    loop_store: LoopStore = Depends(get_loop_store),
):
    """
    Re-run loop analysis inline and replace the stored loop.

    Uses the current MIN_LOOP_LENGTH / HEX_RESOLUTION settings.
    """
    await _get_owned_run(run_id, user_id, run_store)
    try:
        loop = await analyze_run_loop(run_id, run_store, loop_store)
    except asyncio.TimeoutError:
        logger.error(f"Loop recompute timed out for run {run_id}")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Loop analysis timed out",
        )
    except StorageError as e:
        raise PersistenceError(f"Failed to store loop: {e}") from e
    if loop is None:
        raise NotFoundError("Loop", run_id)
    return RunLoopResponse.model_validate(loop)
