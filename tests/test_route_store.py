import pytest

from src.fieldroute.services.routing.errors import (
    JobAlreadyAssigned,
    JobNotAssignable,
    NotFound,
    RouteAlreadyCompleted,
    RouteNotEmpty,
)
from src.fieldroute.services.routing.invariants import route_violations

from tests.factories import DAY, SHOP, SHOP_HOME


def _orders(store, route_id):
    return [(stop.job_id, stop.stop_order) for stop in store.list_stops(route_id)]


def test_find_or_create_route_defaults(service):
    route = service.find_or_create_route(SHOP, DAY, name="North loop")

    assert route.status == "planned"
    assert route.assigned_crew == []
    assert route.total_stops == 0
    assert route.total_distance is None and route.total_duration is None
    assert route.start_location == SHOP_HOME
    assert route.name == "North loop"


def test_find_or_create_route_reuses_existing_route(service):
    first = service.find_or_create_route(SHOP, DAY)
    again = service.find_or_create_route(SHOP, DAY)

    assert again.id == first.id
    assert len(service.list_routes_for_date_range(SHOP, DAY, DAY)) == 1


def test_append_then_remove_renumbers(service, store):
    route = service.find_or_create_route(SHOP, DAY)

    stop_a = service.append_stop(route.id, "J1")
    stop_b = service.append_stop(route.id, "J2")
    assert stop_a.stop_order == 1
    assert stop_b.stop_order == 2

    service.remove_stop(stop_a.id)

    assert _orders(store, route.id) == [("J2", 1)]
    assert store.get_route(route.id).total_stops == 1


def test_remove_middle_stop_closes_gap(service, store):
    route = service.find_or_create_route(SHOP, DAY)
    stops = [service.append_stop(route.id, job_id) for job_id in ("J1", "J2", "J3", "J4")]

    service.remove_stop(stops[1].id)

    assert _orders(store, route.id) == [("J1", 1), ("J3", 2), ("J4", 3)]
    refreshed = store.get_route(route.id)
    assert route_violations(refreshed, store.list_stops(route.id)) == []


def test_append_rejects_job_on_another_route(service, store):
    first = service.find_or_create_route(SHOP, DAY)
    second = store.create_route(shop_id=SHOP, route_date=DAY, name="Crew B")
    service.append_stop(first.id, "J1")

    with pytest.raises(JobAlreadyAssigned):
        service.append_stop(second.id, "J1")

    assert store.get_route(second.id).total_stops == 0


def test_append_rejects_unassignable_and_unknown_jobs(service, jobs):
    route = service.find_or_create_route(SHOP, DAY)
    jobs.set_status("J1", "completed")

    with pytest.raises(JobNotAssignable):
        service.append_stop(route.id, "J1")
    with pytest.raises(NotFound):
        service.append_stop(route.id, "missing")
    with pytest.raises(NotFound):
        service.append_stop("no-such-route", "J2")


def test_delete_route_only_when_empty(service, store):
    route = service.find_or_create_route(SHOP, DAY)
    stop = service.append_stop(route.id, "J1")

    with pytest.raises(RouteNotEmpty):
        service.delete_route(route.id)

    service.remove_stop(stop.id)
    service.delete_route(route.id)
    assert store.get_route(route.id) is None
    with pytest.raises(NotFound):
        service.delete_route(route.id)


def test_remove_stop_with_legs_clears_aggregates(service, store):
    route = service.find_or_create_route(SHOP, DAY)
    first = service.append_stop(route.id, "J1")
    service.append_stop(route.id, "J2")
    optimized = service.optimize(route.id)
    assert optimized.total_distance is not None

    service.remove_stop(first.id)

    refreshed = store.get_route(route.id)
    assert refreshed.total_distance is None
    assert refreshed.total_duration is None
    assert refreshed.return_distance is None
    assert route_violations(refreshed, store.list_stops(route.id)) == []


def test_remove_stop_without_legs_keeps_aggregates(service, store):
    route = service.find_or_create_route(SHOP, DAY)
    service.append_stop(route.id, "J1")
    service.append_stop(route.id, "J2")
    service.optimize(route.id)
    late = service.append_stop(route.id, "J3")

    service.remove_stop(late.id)

    refreshed = store.get_route(route.id)
    assert refreshed.total_distance == pytest.approx(3.0)
    assert route_violations(refreshed, store.list_stops(route.id)) == []


def test_completed_route_is_frozen(service):
    route = service.find_or_create_route(SHOP, DAY)
    stop = service.append_stop(route.id, "J1")
    service.set_route_status(route.id, "completed")

    with pytest.raises(RouteAlreadyCompleted):
        service.append_stop(route.id, "J2")
    with pytest.raises(RouteAlreadyCompleted):
        service.remove_stop(stop.id)
    with pytest.raises(RouteAlreadyCompleted):
        service.assign_crew(route.id, [{"id": "c1", "display_name": "Sam"}])


def test_update_stop_status_stamps_arrival_once(service):
    route = service.find_or_create_route(SHOP, DAY)
    stop = service.append_stop(route.id, "J1")

    arrived = service.update_stop_status(stop.id, "arrived")
    assert arrived.status == "arrived"
    assert arrived.actual_arrival is not None

    again = service.update_stop_status(stop.id, "arrived")
    assert again.actual_arrival == arrived.actual_arrival
    assert again.stop_order == 1

    with pytest.raises(ValueError):
        service.update_stop_status(stop.id, "teleported")
