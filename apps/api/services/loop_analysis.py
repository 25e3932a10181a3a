"""
Loop analysis pipeline for a stored run.

raw trajectory -> hex path (stored as RunHex rows) -> first loop
-> enclosed cells -> RunLoop upsert

Runs once per newly ingested run (via the Celery task) and on explicit
recompute. Recomputing replaces the stored path and loop wholesale.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from core.config import settings
from core.logging import run_fields
from models import RunLoop
from services.area_resolver import compute_enclosed_hexes
from services.hex_grid import HexGrid
from services.loop_detection import detect_first_loop
from services.loop_store import LoopStore, RunLoopResult
from services.run_hexes import gps_to_run_hexes
from services.run_store import RunStore
from services.zone_cycle import cycle_key_for

logger = logging.getLogger(__name__)


async def analyze_run_loop(
    run_id: str,
    run_store: RunStore,
    loop_store: LoopStore,
    grid: Optional[HexGrid] = None,
    min_loop_length: Optional[int] = None,
    resolution: Optional[int] = None,
    timeout_s: Optional[float] = None,
) -> Optional[RunLoop]:
    """
    Detect and store the captured loop for `run_id`.

    Returns the stored RunLoop, or None when the feature is disabled, the run
    or its trajectory is missing, or the path never closes a loop.
    Raises asyncio.TimeoutError if the area fill exceeds `timeout_s`.
    """
    if not settings.LOOP_MASTER_ENABLED:
        logger.debug(f"Loop analysis disabled; skipping run {run_id}")
        return None

    min_loop_length = settings.MIN_LOOP_LENGTH if min_loop_length is None else min_loop_length
    resolution = settings.HEX_RESOLUTION if resolution is None else resolution
    timeout_s = settings.AREA_RESOLVE_TIMEOUT_S if timeout_s is None else timeout_s

    run = await run_store.get_run(run_id)
    if run is None:
        logger.warning(f"Loop analysis requested for unknown run {run_id}")
        return None

    raw_data = await run_store.get_raw_data(run_id)
    if not raw_data:
        logger.info(f"Run {run_id} has no raw trajectory; no loop")
        return None

    run_hexes = await run_in_threadpool(gps_to_run_hexes, raw_data, resolution, grid)
    await run_store.replace_run_hexes(run_id, run_hexes)

    loop = detect_first_loop(run_hexes, min_loop_length)
    if loop is None:
        logger.info(f"No loop in run {run_id} ({len(run_hexes)} cells)")
        return None

    enclosed = await asyncio.wait_for(
        compute_enclosed_hexes(loop.boundary_hexes, resolution, grid),
        timeout=timeout_s,
    )

    result = RunLoopResult(
        cycle_key=cycle_key_for(run.start_time),
        loop_start_index=loop.loop_start_index,
        loop_end_index=loop.loop_end_index,
        boundary_hexes=loop.boundary_hexes,
        enclosed_hexes=enclosed,
    )
    row = await loop_store.upsert(run_id, result)

    logger.info(
        f"Loop stored for run {run_id}: {len(loop.boundary_hexes)} boundary, {len(enclosed)} enclosed",
        extra=run_fields(run_id, cycle_key=result.cycle_key, enclosed_count=len(enclosed)),
    )
    return row
