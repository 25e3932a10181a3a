"""
Pytest configuration and fixtures

Tests run without external services:
- SQL store tests use an in-memory SQLite database migrated to Alembic head per test.
- API tests use the in-memory stores via dependency overrides.
- Celery enqueue is patched out; nothing reaches a broker.
"""
import os
import sys
from unittest.mock import patch

import pytest

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time; configure before importing app modules.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RUN_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "text")

from core.database import build_engine, build_session_factory  # noqa: E402
from run_migrations import alembic_upgrade_head  # noqa: E402
from services.loop_store import InMemoryLoopStore, SqlAlchemyLoopStore, get_loop_store  # noqa: E402
from services.run_store import InMemoryRunStore, SqlAlchemyRunStore, get_run_store  # noqa: E402
from fixtures.grid_fixtures import SquareGrid  # noqa: E402


@pytest.fixture(scope="function")
def sql_engine():
    """Fresh in-memory SQLite database migrated to Alembic head per test."""
    engine = build_engine("sqlite://")
    with engine.begin() as connection:
        alembic_upgrade_head(connection)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return build_session_factory(sql_engine)


@pytest.fixture
def sql_run_store(session_factory):
    return SqlAlchemyRunStore(session_factory)


@pytest.fixture
def sql_loop_store(session_factory):
    return SqlAlchemyLoopStore(session_factory)


@pytest.fixture
def run_store():
    return InMemoryRunStore()


@pytest.fixture
def loop_store():
    return InMemoryLoopStore()


@pytest.fixture
def square_grid():
    return SquareGrid()


@pytest.fixture
def api(run_store, loop_store):
    """
    TestClient wired to in-memory stores.

    Yields (client, enqueue_mock) so tests can assert which runs were queued
    for loop analysis.
    """
    from fastapi.testclient import TestClient
    from main import app

    app.dependency_overrides[get_run_store] = lambda: run_store
    app.dependency_overrides[get_loop_store] = lambda: loop_store
    with patch("routers.runs.enqueue_loop_analysis", return_value=True) as enqueue:
        with TestClient(app) as client:
            yield client, enqueue
    app.dependency_overrides.clear()
