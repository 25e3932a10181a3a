"""
Tests for the Celery loop-analysis task and its enqueue helper.

The task body is called directly; no broker or worker is involved.
"""
import asyncio
from unittest.mock import patch

from services.run_ingestion import RunIngestionGateway
from tasks import loop_tasks
from tasks.loop_tasks import analyze_run_loop_task, enqueue_loop_analysis
from fixtures.run_fixtures import make_submission


def _square_walk():
    corners = [(0, 0), (4, 0), (4, 4), (0, 4), (0, 0)]
    return [{"lat": y, "lng": x, "time": f"2025-12-25T10:0{i}:00Z"} for i, (x, y) in enumerate(corners)]


def _patch_stores(run_store, loop_store):
    return (
        patch.object(loop_tasks, "get_run_store", return_value=run_store),
        patch.object(loop_tasks, "get_loop_store", return_value=loop_store),
    )


def test_task_reports_captured_cells(run_store, loop_store, square_grid):
    asyncio.run(RunIngestionGateway(run_store).submit("user-a", make_submission(run_id="t-1", raw_data=_square_walk())))
    runs_patch, loops_patch = _patch_stores(run_store, loop_store)

    with runs_patch, loops_patch, patch("services.hex_grid._default_grid", square_grid):
        result = analyze_run_loop_task("t-1")

    assert result == {"status": "success", "run_id": "t-1", "cycle_key": "2025-12-22", "enclosed_count": 9}
    assert loop_store.count() == 1


def test_task_reports_no_loop_for_unknown_run(run_store, loop_store):
    runs_patch, loops_patch = _patch_stores(run_store, loop_store)
    with runs_patch, loops_patch:
        result = analyze_run_loop_task("missing")
    assert result == {"status": "no_loop", "run_id": "missing"}


def test_task_reports_timeout_as_error(run_store, loop_store):
    async def _timeout(*_args, **_kwargs):
        raise asyncio.TimeoutError()

    runs_patch, loops_patch = _patch_stores(run_store, loop_store)
    with runs_patch, loops_patch, patch.object(loop_tasks, "analyze_run_loop", _timeout):
        result = analyze_run_loop_task("t-2")

    assert result["status"] == "error"
    assert result["error"] == "timeout"


def test_enqueue_returns_true_when_broker_accepts():
    with patch.object(loop_tasks, "analyze_run_loop_task") as task:
        assert enqueue_loop_analysis("run-9") is True
    task.delay.assert_called_once_with("run-9")


def test_enqueue_swallows_broker_outage():
    with patch.object(loop_tasks, "analyze_run_loop_task") as task:
        task.delay.side_effect = ConnectionError("broker down")
        assert enqueue_loop_analysis("run-9") is False
