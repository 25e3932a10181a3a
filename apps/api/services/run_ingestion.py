"""
Run Ingestion Gateway

Accepts one run upload per call and guarantees:
- Validation happens before any storage access; failures write nothing.
- Idempotency by client-supplied run id. A replay by the same user returns
  the stored run untouched; the same id from another user is forbidden.
- Temporal overlap with the user's other runs is flagged, never rejected.
  Overlapping runs are stored in full (clock skew and client bugs should not
  cost anyone their data).
- The run and its raw trajectory are written together or not at all.

Known gap: the idempotency and overlap reads are not serialized against
concurrent writers. Two simultaneous same-user uploads with intersecting
windows can both be stored as 'synced'. Duplicate ids are still safe because
the store's uniqueness constraint decides the winner.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from core.exceptions import PersistenceError, RunOwnershipConflictError, ValidationError
from core.logging import run_fields
from models import Run, RUN_STATUS_OVERLAPPING, RUN_STATUS_SYNCED
from schemas import RunSubmission
from services.run_hexes import parse_sample
from services.run_store import RunAlreadyExistsError, RunStore, StorageError
from services.zone_cycle import parse_instant

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    run: Run
    created: bool

    def to_receipt(self) -> Dict[str, Any]:
        return {
            "id": self.run.id,
            "run_status": self.run.status,
            "received_at": self.run.created_at,
        }


def _is_non_negative_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value >= 0


def validate_run_submission(payload: RunSubmission) -> Optional[Tuple[str, str]]:
    """
    Check a submission; return (message, field) for the first problem, or None.

    Order matters only for which message the client sees first.
    """
    if not isinstance(payload.id, str) or not payload.id.strip():
        return "ID is required", "id"

    start = parse_instant(payload.start_time)
    if start is None:
        return "Valid start_time is required", "start_time"

    end = parse_instant(payload.end_time)
    if end is None:
        return "Valid end_time is required", "end_time"

    if end <= start:
        return "end_time must be after start_time", "end_time"

    if not _is_non_negative_number(payload.duration):
        return "duration must be a non-negative number", "duration"

    if not _is_non_negative_number(payload.distance):
        return "distance must be a non-negative number", "distance"

    if not isinstance(payload.polyline, str) or not payload.polyline:
        return "polyline is required", "polyline"

    if not isinstance(payload.raw_data, (list, tuple)) or len(payload.raw_data) == 0:
        return "raw_data must be a non-empty array", "raw_data"

    for i, point in enumerate(payload.raw_data):
        if parse_sample(point) is None:
            return f"raw_data[{i}] must have numeric lat, lng and a valid ISO-8601 time", "raw_data"

    if payload.activity_type is not None and not isinstance(payload.activity_type, str):
        return "activity_type must be a string", "activity_type"

    if payload.metadata is not None and not isinstance(payload.metadata, dict):
        return "metadata must be an object", "metadata"

    return None


class RunIngestionGateway:
    def __init__(self, run_store: RunStore):
        self.run_store = run_store

    async def submit(self, user_id: str, payload: RunSubmission) -> IngestionResult:
        """
        Ingest one run for `user_id`.

        Returns IngestionResult(created=True) for a new run and created=False
        for an idempotent replay. Only new runs should trigger loop analysis.
        """
        problem = validate_run_submission(payload)
        if problem:
            message, field = problem
            raise ValidationError(message, field=field)

        run_id = payload.id
        start_time = parse_instant(payload.start_time)
        end_time = parse_instant(payload.end_time)

        try:
            existing = await self.run_store.get_run(run_id)
            if existing is not None:
                return self._replay(existing, user_id)

            overlapping = await self.run_store.find_overlapping_runs(user_id, start_time, end_time)
        except StorageError as e:
            logger.error(f"Run ingestion read failed for {run_id}: {e}")
            raise PersistenceError(f"Failed to store run: {e}") from e

        status = RUN_STATUS_OVERLAPPING if overlapping else RUN_STATUS_SYNCED
        if overlapping:
            logger.info(
                f"Run {run_id} overlaps {len(overlapping)} existing run(s) for user {user_id}",
                extra=run_fields(run_id, overlaps=[r.id for r in overlapping]),
            )

        run = Run(
            id=run_id,
            user_id=user_id,
            start_time=start_time,
            end_time=end_time,
            duration=float(payload.duration),
            distance=float(payload.distance),
            activity_type=payload.activity_type,
            polyline=payload.polyline,
            status=status,
            run_metadata=payload.metadata,
            created_at=datetime.now(timezone.utc),
        )

        try:
            created = await self.run_store.create_run(run, list(payload.raw_data))
        except RunAlreadyExistsError:
            # Lost a race on the same id; the winner's row is authoritative.
            return await self._replay_after_race(run_id, user_id)
        except StorageError as e:
            logger.error(f"Run ingestion write failed for {run_id}: {e}")
            raise PersistenceError(f"Failed to store run: {e}") from e

        logger.info(f"Run {run_id} stored for user {user_id} with status {status}")
        return IngestionResult(run=created, created=True)

    def _replay(self, existing: Run, user_id: str) -> IngestionResult:
        if existing.user_id != user_id:
            logger.warning(f"Run id {existing.id} submitted by {user_id} belongs to another user")
            raise RunOwnershipConflictError(existing.id)
        logger.info(f"Run {existing.id} already processed; returning stored status {existing.status}")
        return IngestionResult(run=existing, created=False)

    async def _replay_after_race(self, run_id: str, user_id: str) -> IngestionResult:
        try:
            existing = await self.run_store.get_run(run_id)
        except StorageError as e:
            raise PersistenceError(f"Failed to store run: {e}") from e
        if existing is None:
            raise PersistenceError(f"Run {run_id} conflicted on create but could not be read back")
        return self._replay(existing, user_id)
