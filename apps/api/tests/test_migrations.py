"""
Tests that the Alembic migrations build the schema the ORM models expect.
"""
import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from core.database import Base, build_engine
from run_migrations import alembic_config, alembic_upgrade_head

TABLES = {"run", "run_raw_data", "run_loop", "run_hex"}


def test_head_creates_every_model_table(sql_engine):
    names = set(inspect(sql_engine).get_table_names())
    assert TABLES <= names
    assert set(Base.metadata.tables) <= names
    assert "alembic_version" in names


def test_head_creates_named_indexes_and_unique_constraints(sql_engine):
    inspector = inspect(sql_engine)

    run_indexes = {ix["name"] for ix in inspector.get_indexes("run")}
    assert {"ix_run_user_id", "ix_run_user_time_window"} <= run_indexes
    assert "ix_run_hex_h3_index" in {ix["name"] for ix in inspector.get_indexes("run_hex")}

    def unique_columns(table):
        return {tuple(uc["column_names"]) for uc in inspector.get_unique_constraints(table)}

    assert ("run_id",) in unique_columns("run_raw_data")
    assert ("run_id",) in unique_columns("run_loop")
    assert ("run_id", "sequence_index") in unique_columns("run_hex")


def test_run_status_check_constraint_is_enforced(sql_engine):
    with pytest.raises(IntegrityError):
        with sql_engine.begin() as conn:
            conn.execute(text(
                "INSERT INTO run (id, user_id, start_time, end_time, duration, distance, polyline, status) "
                "VALUES ('r1', 'u1', '2025-12-25 10:00:00', '2025-12-25 10:30:00', 1800, 5000, 'p', 'bogus')"
            ))


def test_head_is_the_latest_revision(sql_engine):
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    head = ScriptDirectory.from_config(alembic_config()).get_current_head()
    with sql_engine.connect() as conn:
        assert MigrationContext.configure(conn).get_current_revision() == head == "002"


def test_downgrade_to_base_drops_tables():
    from alembic import command

    engine = build_engine("sqlite://")
    with engine.begin() as connection:
        alembic_upgrade_head(connection)
        command.downgrade(alembic_config(connection), "base")

    assert not TABLES & set(inspect(engine).get_table_names())
    engine.dispose()
