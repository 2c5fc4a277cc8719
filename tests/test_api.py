import pytest
from fastapi.testclient import TestClient

from src.fieldroute.main import create_app
from tests.factories import DAY, SHOP, make_job

BASE = "/api/routes"


@pytest.fixture
def api_client(service, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    from src.fieldroute.api.routes import routes

    monkeypatch.setattr(routes, "get_planning_service", lambda: service)
    return TestClient(create_app())


def _create_route(api_client):
    response = api_client.post(f"{BASE}/find-or-create", json={"shop_id": SHOP, "route_date": DAY.isoformat()})
    assert response.status_code == 200
    return response.json()


def _pool(api_client):
    response = api_client.get(
        f"{BASE}/unassigned-jobs",
        params={"shop_id": SHOP, "date_from": DAY.isoformat(), "date_to": DAY.isoformat()},
    )
    assert response.status_code == 200
    return [job["id"] for job in response.json()]


def test_planning_flow_end_to_end(api_client: TestClient):
    created = api_client.post(f"{BASE}/find-or-create", json={"shop_id": SHOP, "route_date": DAY.isoformat()})
    assert created.status_code == 200
    route_id = created.json()["id"]
    assert created.json()["total_distance"] is None

    for job_id in ("J1", "J2", "J3"):
        response = api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": job_id})
        assert response.status_code == 201

    assert _pool(api_client) == ["J4"]

    optimized = api_client.post(f"{BASE}/{route_id}/optimize")
    assert optimized.status_code == 200
    payload = optimized.json()
    assert payload["route"]["total_stops"] == 3
    assert payload["route"]["total_distance"] == pytest.approx(4.0)
    assert payload["route"]["return_distance"] == pytest.approx(1.0)
    assert [stop["stop_order"] for stop in payload["stops"]] == [1, 2, 3]

    detail = api_client.get(f"{BASE}/{route_id}")
    assert detail.status_code == 200
    assert detail.json() == payload

    listed = api_client.get(BASE, params={"shop_id": SHOP, "date_from": DAY.isoformat(), "date_to": DAY.isoformat()})
    assert [route["id"] for route in listed.json()] == [route_id]


def test_second_assignment_of_a_job_is_a_conflict(api_client: TestClient, store):
    first = _create_route(api_client)
    other = store.create_route(shop_id=SHOP, route_date=DAY)

    assert api_client.post(f"{BASE}/{first['id']}/stops", json={"job_id": "J1"}).status_code == 201
    response = api_client.post(f"{BASE}/{other.id}/stops", json={"job_id": "J1"})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "job_already_assigned"
    assert response.json()["detail"]["retryable"] is False


def test_remove_stop_returns_job_to_pool(api_client: TestClient):
    route_id = _create_route(api_client)["id"]
    stop = api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": "J2"}).json()
    assert "J2" not in _pool(api_client)

    removed = api_client.delete(f"{BASE}/stops/{stop['id']}")

    assert removed.status_code == 200
    assert removed.json()["job_id"] == "J2"
    assert "J2" in _pool(api_client)


def test_job_with_stored_coordinates_out_of_range_is_still_listed(api_client: TestClient, jobs):
    jobs.add(make_job("J9", 139.2, 21.5))

    response = api_client.get(
        f"{BASE}/unassigned-jobs",
        params={"shop_id": SHOP, "date_from": DAY.isoformat(), "date_to": DAY.isoformat()},
    )

    assert response.status_code == 200
    listed = {job["id"]: job for job in response.json()}
    assert listed["J9"]["coordinate"] == {"latitude": 139.2, "longitude": 21.5}


def test_error_responses(api_client: TestClient, optimizer):
    from src.fieldroute.services.routing.errors import ProviderError

    assert api_client.get(f"{BASE}/missing").status_code == 404

    route_id = _create_route(api_client)["id"]
    api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": "J1"})

    too_few = api_client.post(f"{BASE}/{route_id}/optimize")
    assert too_few.status_code == 400
    assert too_few.json()["detail"]["code"] == "insufficient_stops"

    api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": "J2"})
    optimizer.error = ProviderError("Trip optimization timed out after 15s.")
    failed = api_client.post(f"{BASE}/{route_id}/optimize")
    assert failed.status_code == 502
    assert failed.json()["detail"]["retryable"] is True

    not_empty = api_client.delete(f"{BASE}/{route_id}")
    assert not_empty.status_code == 409

    inverted = api_client.get(BASE, params={"shop_id": SHOP, "date_from": "2025-03-10", "date_to": "2025-03-01"})
    assert inverted.status_code == 400


def test_route_status_crew_and_stop_check_in(api_client: TestClient):
    route_id = _create_route(api_client)["id"]
    stop = api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": "J1"}).json()

    crew = api_client.put(f"{BASE}/{route_id}/crew", json={"crew": [{"id": "tech-1", "display_name": "Ana"}]})
    assert crew.status_code == 200
    assert crew.json()["assigned_crew"] == [{"id": "tech-1", "display_name": "Ana"}]

    arrived = api_client.patch(f"{BASE}/stops/{stop['id']}/status", json={"status": "arrived"})
    assert arrived.status_code == 200
    assert arrived.json()["actual_arrival"] is not None

    assert api_client.post(f"{BASE}/{route_id}/status", json={"status": "in_progress"}).status_code == 200
    assert api_client.post(f"{BASE}/{route_id}/status", json={"status": "completed"}).status_code == 200

    frozen = api_client.post(f"{BASE}/{route_id}/stops", json={"job_id": "J2"})
    assert frozen.status_code == 400
    assert frozen.json()["detail"]["code"] == "route_already_completed"

    unknown = api_client.post(f"{BASE}/{route_id}/status", json={"status": "archived"})
    assert unknown.status_code == 422


def test_health_endpoint():
    client = TestClient(create_app())

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
