"""
Loop storage: at most one RunLoop per run.

`upsert` replaces the whole row for a run. The unique run_id plus an
INSERT ... ON CONFLICT DO UPDATE is what serializes concurrent recomputation;
there is no in-process lock.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from core.config import settings
from models import RunLoop
from services.run_store import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunLoopResult:
    cycle_key: str
    loop_start_index: int
    loop_end_index: int
    boundary_hexes: List[str] = field(default_factory=list)
    enclosed_hexes: List[str] = field(default_factory=list)

    def to_row(self, run_id: str) -> dict:
        return {
            "run_id": run_id,
            "cycle_key": self.cycle_key,
            "loop_start_index": self.loop_start_index,
            "loop_end_index": self.loop_end_index,
            "boundary_hexes": list(self.boundary_hexes),
            "enclosed_hexes": list(self.enclosed_hexes),
        }


class LoopStore(ABC):
    @abstractmethod
    async def upsert(self, run_id: str, result: RunLoopResult) -> RunLoop:
        ...

    @abstractmethod
    async def get(self, run_id: str) -> Optional[RunLoop]:
        ...


class InMemoryLoopStore(LoopStore):
    def __init__(self):
        self._loops: Dict[str, RunLoop] = {}

    async def upsert(self, run_id: str, result: RunLoopResult) -> RunLoop:
        now = datetime.now(timezone.utc)
        previous = self._loops.get(run_id)
        row = RunLoop(
            **result.to_row(run_id),
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )
        self._loops[run_id] = row
        return row

    async def get(self, run_id: str) -> Optional[RunLoop]:
        return self._loops.get(run_id)

    def count(self) -> int:
        return len(self._loops)


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StorageError(f"Loop upsert not supported on dialect '{dialect_name}'")
    return insert


class SqlAlchemyLoopStore(LoopStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def upsert(self, run_id: str, result: RunLoopResult) -> RunLoop:
        return await run_in_threadpool(self._upsert, run_id, result)

    async def get(self, run_id: str) -> Optional[RunLoop]:
        return await run_in_threadpool(self._get, run_id)

    def _upsert(self, run_id: str, result: RunLoopResult) -> RunLoop:
        now = datetime.now(timezone.utc)
        values = result.to_row(run_id)

        with self._session_factory() as db:
            insert = _dialect_insert(db.get_bind().dialect.name)
            stmt = insert(RunLoop.__table__).values(**values, created_at=now, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=[RunLoop.__table__.c.run_id],
                set_={
                    "cycle_key": stmt.excluded.cycle_key,
                    "loop_start_index": stmt.excluded.loop_start_index,
                    "loop_end_index": stmt.excluded.loop_end_index,
                    "boundary_hexes": stmt.excluded.boundary_hexes,
                    "enclosed_hexes": stmt.excluded.enclosed_hexes,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            try:
                db.execute(stmt)
                db.commit()
                return db.query(RunLoop).filter(RunLoop.run_id == run_id).one()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Loop upsert failed for run {run_id}: {e}") from e

    def _get(self, run_id: str) -> Optional[RunLoop]:
        try:
            with self._session_factory() as db:
                return db.query(RunLoop).filter(RunLoop.run_id == run_id).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Loop lookup failed: {e}") from e


@lru_cache(maxsize=1)
def get_loop_store() -> LoopStore:
    """FastAPI dependency; backend chosen by RUN_STORE_BACKEND."""
    if settings.RUN_STORE_BACKEND == "memory":
        return InMemoryLoopStore()
    from core.database import SessionLocal

    return SqlAlchemyLoopStore(SessionLocal)
