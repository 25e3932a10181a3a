"""
Run storage.

One interface, two implementations chosen by RUN_STORE_BACKEND:
- SqlAlchemyRunStore: production. The primary key on run.id is the single
  source of truth for idempotency; a losing concurrent writer gets
  RunAlreadyExistsError rather than a raw IntegrityError.
- InMemoryRunStore: local development and tests.

All methods are coroutines. The SQL store runs blocking SQLAlchemy work in
the threadpool and opens one session per call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from core.config import settings
from models import Run, RunHex, RunRawData

logger = logging.getLogger(__name__)


class RunAlreadyExistsError(Exception):
    """Create lost on the run id uniqueness constraint."""

    def __init__(self, run_id: str):
        super().__init__(f"Run already exists: {run_id}")
        self.run_id = run_id


class StorageError(Exception):
    """Backing store unavailable or the write failed."""


class RunStore(ABC):
    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[Run]:
        ...

    @abstractmethod
    async def find_overlapping_runs(self, user_id: str, start_time: datetime, end_time: datetime) -> List[Run]:
        """Runs of `user_id` whose [start, end) strictly intersects [start_time, end_time)."""

    @abstractmethod
    async def create_run(self, run: Run, raw_data: List[Dict[str, Any]]) -> Run:
        """Persist the run and its raw trajectory together, or neither."""

    @abstractmethod
    async def get_raw_data(self, run_id: str) -> Optional[List[Dict[str, Any]]]:
        ...

    @abstractmethod
    async def replace_run_hexes(self, run_id: str, run_hexes: List[str]) -> None:
        """Store `run_hexes` as the run's path, dropping any previous path."""

    @abstractmethod
    async def get_run_hexes(self, run_id: str) -> List[str]:
        ...


class InMemoryRunStore(RunStore):
    def __init__(self):
        self._runs: Dict[str, Run] = {}
        self._raw: Dict[str, RunRawData] = {}
        self._hexes: Dict[str, List[str]] = {}

    async def get_run(self, run_id: str) -> Optional[Run]:
        return self._runs.get(run_id)

    async def find_overlapping_runs(self, user_id: str, start_time: datetime, end_time: datetime) -> List[Run]:
        matches = [
            r for r in self._runs.values()
            if r.user_id == user_id and r.start_time < end_time and r.end_time > start_time
        ]
        return sorted(matches, key=lambda r: r.start_time)

    async def create_run(self, run: Run, raw_data: List[Dict[str, Any]]) -> Run:
        # No await between the check and the insert, so this is atomic on the event loop.
        if run.id in self._runs:
            raise RunAlreadyExistsError(run.id)
        self._runs[run.id] = run
        self._raw[run.id] = RunRawData(run_id=run.id, raw_data=list(raw_data), created_at=run.created_at)
        return run

    async def get_raw_data(self, run_id: str) -> Optional[List[Dict[str, Any]]]:
        raw = self._raw.get(run_id)
        return list(raw.raw_data) if raw else None

    async def replace_run_hexes(self, run_id: str, run_hexes: List[str]) -> None:
        self._hexes[run_id] = list(run_hexes)

    async def get_run_hexes(self, run_id: str) -> List[str]:
        return list(self._hexes.get(run_id, []))

    def count(self) -> int:
        return len(self._runs)


class SqlAlchemyRunStore(RunStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def get_run(self, run_id: str) -> Optional[Run]:
        return await run_in_threadpool(self._get_run, run_id)

    async def find_overlapping_runs(self, user_id: str, start_time: datetime, end_time: datetime) -> List[Run]:
        return await run_in_threadpool(self._find_overlapping_runs, user_id, start_time, end_time)

    async def create_run(self, run: Run, raw_data: List[Dict[str, Any]]) -> Run:
        return await run_in_threadpool(self._create_run, run, raw_data)

    async def get_raw_data(self, run_id: str) -> Optional[List[Dict[str, Any]]]:
        return await run_in_threadpool(self._get_raw_data, run_id)

    async def replace_run_hexes(self, run_id: str, run_hexes: List[str]) -> None:
        await run_in_threadpool(self._replace_run_hexes, run_id, list(run_hexes))

    async def get_run_hexes(self, run_id: str) -> List[str]:
        return await run_in_threadpool(self._get_run_hexes, run_id)

    def _get_run(self, run_id: str) -> Optional[Run]:
        try:
            with self._session_factory() as db:
                return db.query(Run).filter(Run.id == run_id).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Run lookup failed: {e}") from e

    def _find_overlapping_runs(self, user_id: str, start_time: datetime, end_time: datetime) -> List[Run]:
        try:
            with self._session_factory() as db:
                return (
                    db.query(Run)
                    .filter(
                        Run.user_id == user_id,
                        and_(Run.start_time < end_time, Run.end_time > start_time),
                    )
                    .order_by(Run.start_time)
                    .all()
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Overlap query failed: {e}") from e

    def _create_run(self, run: Run, raw_data: List[Dict[str, Any]]) -> Run:
        with self._session_factory() as db:
            try:
                db.add(run)
                db.add(RunRawData(run_id=run.id, raw_data=list(raw_data)))
                db.commit()
            except IntegrityError as e:
                db.rollback()
                if db.query(Run.id).filter(Run.id == run.id).first() is not None:
                    raise RunAlreadyExistsError(run.id) from e
                raise StorageError(f"Run insert rejected: {e.orig}") from e
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Run insert failed: {e}") from e
            return run

    def _get_raw_data(self, run_id: str) -> Optional[List[Dict[str, Any]]]:
        try:
            with self._session_factory() as db:
                row = db.query(RunRawData).filter(RunRawData.run_id == run_id).first()
                return list(row.raw_data) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Raw data lookup failed: {e}") from e

    def _replace_run_hexes(self, run_id: str, run_hexes: List[str]) -> None:
        with self._session_factory() as db:
            try:
                db.query(RunHex).filter(RunHex.run_id == run_id).delete(synchronize_session=False)
                db.add_all(
                    RunHex(run_id=run_id, sequence_index=i, h3_index=cell)
                    for i, cell in enumerate(run_hexes)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Run hex replace failed: {e}") from e

    def _get_run_hexes(self, run_id: str) -> List[str]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(RunHex.h3_index)
                    .filter(RunHex.run_id == run_id)
                    .order_by(RunHex.sequence_index)
                    .all()
                )
                return [row.h3_index for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Run hex lookup failed: {e}") from e


@lru_cache(maxsize=1)
def get_run_store() -> RunStore:
    """FastAPI dependency; backend chosen by RUN_STORE_BACKEND."""
    if settings.RUN_STORE_BACKEND == "memory":
        logger.info("Using in-memory run store")
        return InMemoryRunStore()
    from core.database import SessionLocal

    return SqlAlchemyRunStore(SessionLocal)
