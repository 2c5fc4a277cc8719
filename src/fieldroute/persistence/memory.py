"""In-process route store used for local development and tests."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Sequence

from ..models.domain import CrewMember, Location, Route, Stop
from ..services.routing.errors import (
    JobAlreadyAssigned,
    NotFound,
    RouteAlreadyCompleted,
    RouteChanged,
    RouteNotEmpty,
)
from ..services.routing.models import ReconciliationPlan
from .base import RouteStore

logger = logging.getLogger(__name__)


def _copy_route(route: Route) -> Route:
    return replace(route, assigned_crew=list(route.assigned_crew))


class InMemoryRouteStore(RouteStore):
    """Dictionary-backed store guarded by one re-entrant lock.

    ``_stop_id_by_job`` plays the role of the unique index on stop job ids,
    so single assignment holds for every thread sharing the instance.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._routes: dict[str, Route] = {}
        self._stops: dict[str, Stop] = {}
        self._stop_id_by_job: dict[str, str] = {}

    def _require_route(self, route_id: str) -> Route:
        route = self._routes.get(route_id)
        if route is None:
            raise NotFound("Route", route_id)
        return route

    def _require_stop(self, stop_id: str) -> Stop:
        stop = self._stops.get(stop_id)
        if stop is None:
            raise NotFound("Stop", stop_id)
        return stop

    def _route_stops(self, route_id: str) -> list[Stop]:
        stops = [stop for stop in self._stops.values() if stop.route_id == route_id]
        stops.sort(key=lambda stop: stop.stop_order)
        return stops

    def get_route(self, route_id: str) -> Optional[Route]:
        with self._lock:
            route = self._routes.get(route_id)
            return _copy_route(route) if route else None

    def find_routes(self, shop_id: str, date_from: date, date_to: date) -> list[Route]:
        with self._lock:
            matches = [
                _copy_route(route)
                for route in self._routes.values()
                if route.shop_id == shop_id and date_from <= route.route_date <= date_to
            ]
        matches.sort(key=lambda route: (route.route_date, route.created_at or datetime.min.replace(tzinfo=timezone.utc)))
        return matches

    def create_route(
        self,
        *,
        shop_id: str,
        route_date: date,
        name: Optional[str] = None,
        start_location: Optional[Location] = None,
        end_location: Optional[Location] = None,
    ) -> Route:
        route = Route(
            id=str(uuid.uuid4()),
            shop_id=shop_id,
            route_date=route_date,
            name=name,
            start_location=start_location,
            end_location=end_location,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._routes[route.id] = route
            return _copy_route(route)

    def delete_route_if_empty(self, route_id: str) -> None:
        with self._lock:
            route = self._require_route(route_id)
            remaining = len(self._route_stops(route_id))
            if remaining:
                raise RouteNotEmpty(route_id, remaining)
            del self._routes[route.id]

    def update_route_status(self, route_id: str, expected: str, status: str) -> Route:
        with self._lock:
            route = self._require_route(route_id)
            if route.status != expected:
                raise RouteChanged(route_id, f"status is now '{route.status}'")
            route.status = status
            return _copy_route(route)

    def update_route_crew(self, route_id: str, crew: Sequence[CrewMember]) -> Route:
        with self._lock:
            route = self._require_route(route_id)
            if route.status == "completed":
                raise RouteAlreadyCompleted(route_id)
            route.assigned_crew = list(crew)
            return _copy_route(route)

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        with self._lock:
            stop = self._stops.get(stop_id)
            return replace(stop) if stop else None

    def list_stops(self, route_id: str) -> list[Stop]:
        with self._lock:
            return [replace(stop) for stop in self._route_stops(route_id)]

    def assigned_job_ids(self, job_ids: Iterable[str]) -> set[str]:
        with self._lock:
            return {job_id for job_id in job_ids if job_id in self._stop_id_by_job}

    def append_stop(self, route_id: str, job_id: str) -> Stop:
        with self._lock:
            route = self._require_route(route_id)
            if route.status == "completed":
                raise RouteAlreadyCompleted(route_id)
            if job_id in self._stop_id_by_job:
                raise JobAlreadyAssigned(job_id)
            current = self._route_stops(route_id)
            next_order = (current[-1].stop_order if current else 0) + 1
            stop = Stop(id=str(uuid.uuid4()), route_id=route_id, job_id=job_id, stop_order=next_order)
            self._stops[stop.id] = stop
            self._stop_id_by_job[job_id] = stop.id
            route.total_stops = len(current) + 1
            return replace(stop)

    def remove_stop(self, stop_id: str) -> Stop:
        with self._lock:
            stop = self._require_stop(stop_id)
            route = self._require_route(stop.route_id)
            if route.status == "completed":
                raise RouteAlreadyCompleted(route.id)
            del self._stops[stop.id]
            self._stop_id_by_job.pop(stop.job_id, None)
            remaining = self._route_stops(route.id)
            for other in remaining:
                if other.stop_order > stop.stop_order:
                    other.stop_order -= 1
            route.total_stops = len(remaining)
            if stop.has_leg_metrics:
                route.total_distance = None
                route.total_duration = None
                route.return_distance = None
                route.return_duration = None
            return replace(stop)

    def update_stop_status(
        self, stop_id: str, status: str, actual_arrival: Optional[datetime] = None
    ) -> Stop:
        with self._lock:
            stop = self._require_stop(stop_id)
            stop.status = status
            if actual_arrival is not None:
                stop.actual_arrival = actual_arrival
            return replace(stop)

    def apply_optimization(self, plan: ReconciliationPlan) -> Route:
        with self._lock:
            route = self._require_route(plan.route_id)
            if route.status == "completed":
                raise RouteAlreadyCompleted(route.id)
            current = self._route_stops(route.id)
            if frozenset(stop.id for stop in current) != plan.expected_stop_ids:
                raise RouteChanged(route.id)
            for placement in plan.placements:
                stop = self._stops[placement.stop_id]
                stop.stop_order = placement.stop_order
                stop.distance_from_previous = placement.distance_from_previous
                stop.drive_time_from_previous = placement.drive_time_from_previous
            route.total_distance = plan.total_distance
            route.total_duration = plan.total_duration
            route.return_distance = plan.return_distance
            route.return_duration = plan.return_duration
            logger.debug(f"Applied optimization to route {route.id} ({len(plan.placements)} stops)")
            return _copy_route(route)
