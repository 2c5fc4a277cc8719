import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from src.fieldroute.data.jobs_repository import InMemoryJobStore
from src.fieldroute.data.shop_repository import ShopDirectory
from src.fieldroute.persistence.base import StopOrderConflict
from src.fieldroute.persistence.memory import InMemoryRouteStore
from src.fieldroute.services.routing.errors import JobAlreadyAssigned, RouteBusy
from src.fieldroute.services.routing.invariants import duplicate_job_assignments, route_violations
from src.fieldroute.services.routing.service import RoutePlanningService
from tests.factories import DAY, SHOP, make_job


def _attempt(service, route_id, job_id, barrier):
    barrier.wait()
    try:
        return service.append_stop(route_id, job_id)
    except JobAlreadyAssigned as exc:
        return exc


def test_same_job_on_two_routes_only_one_wins(service, store):
    route_a = service.find_or_create_route(SHOP, DAY)
    route_b = store.create_route(shop_id=SHOP, route_date=DAY, name="Crew B")
    barrier = threading.Barrier(2)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(_attempt, service, route_id, "J1", barrier) for route_id in (route_a.id, route_b.id)
        ]
        outcomes = [future.result() for future in futures]

    failures = [outcome for outcome in outcomes if isinstance(outcome, JobAlreadyAssigned)]
    assert len(failures) == 1

    stops = store.list_stops(route_a.id) + store.list_stops(route_b.id)
    assert [stop.job_id for stop in stops] == ["J1"]
    assert duplicate_job_assignments(stops) == {}
    for route_id in (route_a.id, route_b.id):
        assert route_violations(store.get_route(route_id), store.list_stops(route_id)) == []


def test_same_job_twice_on_one_route_only_one_wins(service, store):
    route = service.find_or_create_route(SHOP, DAY)
    barrier = threading.Barrier(2)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_attempt, service, route.id, "J1", barrier) for _ in range(2)]
        outcomes = [future.result() for future in futures]

    failures = [outcome for outcome in outcomes if isinstance(outcome, JobAlreadyAssigned)]
    assert len(failures) == 1

    stops = store.list_stops(route.id)
    assert [(stop.job_id, stop.stop_order) for stop in stops] == [("J1", 1)]
    assert route_violations(store.get_route(route.id), stops) == []


def test_parallel_appends_to_one_route_stay_contiguous():
    job_ids = [f"P{index}" for index in range(20)]
    store = InMemoryRouteStore()
    service = RoutePlanningService(
        store,
        InMemoryJobStore([make_job(job_id) for job_id in job_ids]),
        ShopDirectory(),
        append_max_attempts=3,
    )
    route = service.find_or_create_route(SHOP, DAY)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda job_id: service.append_stop(route.id, job_id), job_ids))

    stops = store.list_stops(route.id)
    assert sorted(stop.stop_order for stop in stops) == list(range(1, 21))
    assert sorted(stop.job_id for stop in stops) == sorted(job_ids)
    assert route_violations(store.get_route(route.id), stops) == []


class _ConflictingStore(InMemoryRouteStore):
    """Loses the stop order race a fixed number of times before appending."""

    def __init__(self, conflicts: int) -> None:
        super().__init__()
        self.conflicts = conflicts
        self.attempts = 0

    def append_stop(self, route_id, job_id):
        self.attempts += 1
        if self.attempts <= self.conflicts:
            raise StopOrderConflict(route_id)
        return super().append_stop(route_id, job_id)


def _service_over(store):
    return RoutePlanningService(store, InMemoryJobStore([make_job("J1")]), ShopDirectory(), append_max_attempts=3)


def test_order_conflict_is_retried():
    store = _ConflictingStore(conflicts=2)
    service = _service_over(store)
    route = service.find_or_create_route(SHOP, DAY)

    stop = service.append_stop(route.id, "J1")

    assert stop.stop_order == 1
    assert store.attempts == 3


def test_order_conflict_exhausts_into_route_busy():
    store = _ConflictingStore(conflicts=5)
    service = _service_over(store)
    route = service.find_or_create_route(SHOP, DAY)

    with pytest.raises(RouteBusy) as excinfo:
        service.append_stop(route.id, "J1")

    assert excinfo.value.retryable
    assert store.attempts == 3
    assert store.list_stops(route.id) == []
