"""
HTTP-level tests for /v1/runs using TestClient and in-memory stores.
"""
import pytest

from services.loop_store import RunLoopResult
from fixtures.run_fixtures import auth_headers, make_run_payload


def test_submit_requires_authentication(api):
    client, _ = api
    response = client.post("/v1/runs", json=make_run_payload())
    assert response.status_code == 401


def test_submit_rejects_invalid_token(api):
    client, _ = api
    response = client.post("/v1/runs", json=make_run_payload(), headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_new_run_returns_201_and_queues_loop_analysis(api, run_store):
    client, enqueue = api
    response = client.post("/v1/runs", json=make_run_payload(run_id="api-1"), headers=auth_headers("user-a"))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["id"] == "api-1"
    assert body["data"]["run_status"] == "synced"
    assert body["data"]["received_at"]
    enqueue.assert_called_once_with("api-1")
    assert run_store.count() == 1


def test_duplicate_submission_returns_200_without_requeue(api, run_store):
    client, enqueue = api
    headers = auth_headers("user-a")
    first = client.post("/v1/runs", json=make_run_payload(run_id="api-dup"), headers=headers)
    second = client.post("/v1/runs", json=make_run_payload(run_id="api-dup"), headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["message"] == "Run already processed"
    assert second.json()["data"]["id"] == "api-dup"
    assert second.json()["data"]["run_status"] == first.json()["data"]["run_status"]
    assert enqueue.call_count == 1
    assert run_store.count() == 1


def test_same_id_from_another_user_is_forbidden(api):
    client, _ = api
    assert client.post("/v1/runs", json=make_run_payload(run_id="api-x"), headers=auth_headers("user-a")).status_code == 201

    response = client.post("/v1/runs", json=make_run_payload(run_id="api-x"), headers=auth_headers("user-b"))

    assert response.status_code == 403
    assert response.json()["status"] == "error"
    assert response.json()["error_code"] == "RUN_ID_CONFLICT"


def test_invalid_distance_returns_400_with_message(api, run_store):
    client, enqueue = api
    response = client.post("/v1/runs", json=make_run_payload(distance=-1), headers=auth_headers("user-a"))

    assert response.status_code == 400
    assert "distance" in response.json()["message"]
    assert response.json()["error_code"] == "VALIDATION_ERROR_DISTANCE"
    enqueue.assert_not_called()
    assert run_store.count() == 0


def test_overlapping_run_is_accepted_and_flagged(api):
    client, _ = api
    headers = auth_headers("user-a")
    client.post("/v1/runs", json=make_run_payload(run_id="morning"), headers=headers)

    response = client.post(
        "/v1/runs",
        json=make_run_payload(run_id="overlap", start="2025-12-25T10:20:00Z", end="2025-12-25T10:50:00Z"),
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["data"]["run_status"] == "overlapping"


def test_storage_failure_returns_503(api, run_store, monkeypatch):
    from services.run_store import StorageError

    async def _down(*_args, **_kwargs):
        raise StorageError("connection refused")

    monkeypatch.setattr(run_store, "get_run", _down)
    client, _ = api
    response = client.post("/v1/runs", json=make_run_payload(), headers=auth_headers("user-a"))

    assert response.status_code == 503
    assert response.json()["error_code"] == "PERSISTENCE_ERROR"


@pytest.mark.asyncio
async def test_get_loop_returns_stored_loop_for_owner_only(api, loop_store):
    client, _ = api
    client.post("/v1/runs", json=make_run_payload(run_id="looped"), headers=auth_headers("user-a"))
    await loop_store.upsert(
        "looped",
        RunLoopResult(
            cycle_key="2025-12-22",
            loop_start_index=0,
            loop_end_index=6,
            boundary_hexes=["a", "b", "c", "d", "e", "f", "a"],
            enclosed_hexes=["z"],
        ),
    )

    response = client.get("/v1/runs/looped/loop", headers=auth_headers("user-a"))
    assert response.status_code == 200
    assert response.json()["enclosed_hexes"] == ["z"]
    assert response.json()["cycle_key"] == "2025-12-22"

    assert client.get("/v1/runs/looped/loop", headers=auth_headers("user-b")).status_code == 404


def test_get_loop_missing_returns_404(api):
    client, _ = api
    client.post("/v1/runs", json=make_run_payload(run_id="no-loop"), headers=auth_headers("user-a"))
    response = client.get("/v1/runs/no-loop/loop", headers=auth_headers("user-a"))
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


def test_recompute_runs_pipeline_inline(api, loop_store, monkeypatch):
    from fixtures.grid_fixtures import SquareGrid
    from services import hex_grid

    monkeypatch.setattr(hex_grid, "_default_grid", SquareGrid())
    client, _ = api
    corners = [(0, 0), (4, 0), (4, 4), (0, 4), (0, 0)]
    raw = [{"lat": y, "lng": x, "time": f"2025-12-25T10:0{i}:00Z"} for i, (x, y) in enumerate(corners)]
    client.post("/v1/runs", json=make_run_payload(run_id="square", raw_data=raw), headers=auth_headers("user-a"))

    response = client.post("/v1/runs/square/loop/recompute", headers=auth_headers("user-a"))

    assert response.status_code == 200
    assert len(response.json()["enclosed_hexes"]) == 9
    assert loop_store.count() == 1


def test_recompute_without_loop_returns_404(api):
    client, _ = api
    client.post("/v1/runs", json=make_run_payload(run_id="single-point"), headers=auth_headers("user-a"))
    response = client.post("/v1/runs/single-point/loop/recompute", headers=auth_headers("user-a"))
    assert response.status_code == 404


def test_health_reports_healthy(api):
    client, _ = api
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.parametrize(
    "overrides, error_code",
    [
        ({"id": 12345}, "VALIDATION_ERROR_ID"),
        ({"metadata": ["not", "an", "object"]}, "VALIDATION_ERROR_METADATA"),
        ({"raw_data": [{"lat": 1.0}]}, "VALIDATION_ERROR_RAW_DATA"),
        ({"start_time": 1735120800}, "VALIDATION_ERROR_START_TIME"),
    ],
)
def test_wrongly_typed_fields_get_gateway_400_not_422(api, run_store, overrides, error_code):
    client, enqueue = api
    response = client.post("/v1/runs", json=make_run_payload(**overrides), headers=auth_headers("user-a"))

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    assert response.json()["error_code"] == error_code
    enqueue.assert_not_called()
    assert run_store.count() == 0
