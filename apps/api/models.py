from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Text, Index, CheckConstraint, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from core.database import Base
from datetime import datetime, timezone


# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests).
JSONType = JSON().with_variant(JSONB, "postgresql")

RUN_STATUS_SYNCED = "synced"
RUN_STATUS_OVERLAPPING = "overlapping"
RUN_STATUSES = (RUN_STATUS_SYNCED, RUN_STATUS_OVERLAPPING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Run(Base):
    """
    One submitted run.

    `id` is supplied by the client and doubles as the global idempotency key.
    Rows are immutable once created; `status` is decided at creation time.
    """
    __tablename__ = "run"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Float, nullable=False)  # seconds
    distance = Column(Float, nullable=False)  # meters
    activity_type = Column(Text, nullable=True)  # e.g. 'RUN', 'WALK'
    polyline = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=RUN_STATUS_SYNCED)
    # `metadata` is reserved on declarative classes; keep the column name, rename the attribute.
    run_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    raw_data = relationship("RunRawData", back_populates="run", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('synced', 'overlapping')",
            name="ck_run_status",
        ),
        # Overlap lookups filter by user and time window
        Index("ix_run_user_time_window", "user_id", "start_time", "end_time"),
    )


class RunRawData(Base):
    """
    Raw GPS trajectory for a run: a JSON list of {lat, lng, time} samples.

    Written in the same transaction as its Run and never updated.
    """
    __tablename__ = "run_raw_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, ForeignKey("run.id"), nullable=False)
    raw_data = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    run = relationship("Run", back_populates="raw_data")

    __table_args__ = (
        UniqueConstraint("run_id", name="uq_run_raw_data_run_id"),
    )


class RunLoop(Base):
    """
    Captured loop for a run: the boundary ring and the cells it encloses.

    The unique run_id serializes recomputation: writers upsert on it, so a
    run never has more than one loop row.
    """
    __tablename__ = "run_loop"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, ForeignKey("run.id"), nullable=False)
    cycle_key = Column(Text, nullable=False, index=True)  # UTC Monday, YYYY-MM-DD
    loop_start_index = Column(Integer, nullable=False)
    loop_end_index = Column(Integer, nullable=False)
    boundary_hexes = Column(JSONType, nullable=False)
    enclosed_hexes = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("run_id", name="uq_run_loop_run_id"),
    )


class RunHex(Base):
    """
    The run's contiguous cell path, one row per cell in visiting order.

    Replaced wholesale each time the run is analyzed.
    """
    __tablename__ = "run_hex"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, ForeignKey("run.id"), nullable=False)
    sequence_index = Column(Integer, nullable=False)  # 0-based position in the path
    h3_index = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("run_id", "sequence_index", name="uq_run_hex_run_sequence"),
        # Who has run through a cell
        Index("ix_run_hex_h3_index", "h3_index"),
    )
