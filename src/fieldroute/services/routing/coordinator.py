"""Route optimization round trip: request a visit order, reconcile it into the store.

Leg attribution: ``legs[i]`` is the drive into the i-th visited stop, so the
origin leg is recorded as the first stop's ``*_from_previous``. When the
provider closes the loop it returns one extra leg, ``legs[N]``, which is
recorded on the route as ``return_distance``/``return_duration``. Route
totals therefore always equal the stops' legs plus the return leg.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence

import httpx

from ...config import settings
from ...data.jobs_repository import JobStore
from ...data.shop_repository import ShopDirectory
from ...models.domain import Point, Route, Stop
from ...persistence.base import RouteStore
from .errors import InsufficientStops, NotFound, ProviderError, RoutePlanningError, TooManyStops
from .invariants import ensure_route_editable
from .models import OptimizationResult, ReconciliationPlan, StopPlacement
from .optimization_client import OptimizationClient

logger = logging.getLogger(__name__)

OptimizationState = Literal["idle", "requesting", "reconciling", "failed"]

_TRANSITIONS: dict[str, frozenset[str]] = {
    "idle": frozenset({"requesting"}),
    "requesting": frozenset({"reconciling", "failed"}),
    "reconciling": frozenset({"idle", "failed"}),
    "failed": frozenset({"idle"}),
}


@dataclass(slots=True)
class OptimizationRun:
    """State of one optimize() invocation."""

    route_id: str
    state: OptimizationState = "idle"
    history: list[str] = field(default_factory=lambda: ["idle"])

    def advance(self, state: OptimizationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal optimization transition {self.state} -> {state}")
        logger.debug(f"Route {self.route_id} optimization: {self.state} -> {state}")
        self.state = state
        self.history.append(state)


def build_reconciliation_plan(
    route_id: str,
    geocoded: Sequence[Stop],
    ungeocoded: Sequence[Stop],
    result: OptimizationResult,
    tolerance: float,
) -> ReconciliationPlan:
    """Turn a provider result into the full set of writes for one route.

    Raises ProviderError when the result does not describe a trip over
    exactly the stops that were sent. Route totals are the sum of the legs;
    the provider aggregates only serve as a consistency check.
    """
    sent_ids = [stop.id for stop in geocoded]
    count = len(sent_ids)
    if len(result.visit_order) != count or set(result.visit_order) != set(sent_ids):
        raise ProviderError("Optimizer visit order is not a permutation of the requested stops.")
    if len(result.legs) not in (count, count + 1):
        raise ProviderError(f"Optimizer returned {len(result.legs)} legs for {count} stops.")

    leg_distance = sum(leg.distance_miles for leg in result.legs)
    leg_duration = sum(leg.duration_minutes for leg in result.legs)
    if not (
        math.isclose(leg_distance, result.aggregate_distance_miles, abs_tol=tolerance)
        and math.isclose(leg_duration, result.aggregate_duration_minutes, abs_tol=tolerance)
    ):
        raise ProviderError(
            f"Optimizer totals ({result.aggregate_distance_miles:.2f} mi, {result.aggregate_duration_minutes:.2f} min) "
            f"do not match its legs ({leg_distance:.2f} mi, {leg_duration:.2f} min)."
        )

    placements: list[StopPlacement] = []
    for position, (stop_id, leg) in enumerate(zip(result.visit_order, result.legs), start=1):
        placements.append(
            StopPlacement(
                stop_id=stop_id,
                stop_order=position,
                distance_from_previous=leg.distance_miles,
                drive_time_from_previous=leg.duration_minutes,
            )
        )
    for offset, stop in enumerate(ungeocoded, start=count + 1):
        placements.append(
            StopPlacement(stop_id=stop.id, stop_order=offset, distance_from_previous=None, drive_time_from_previous=None)
        )

    closing = result.legs[count] if len(result.legs) == count + 1 else None
    return ReconciliationPlan(
        route_id=route_id,
        expected_stop_ids=frozenset([*sent_ids, *(stop.id for stop in ungeocoded)]),
        placements=placements,
        total_distance=leg_distance,
        total_duration=leg_duration,
        return_distance=closing.distance_miles if closing else None,
        return_duration=closing.duration_minutes if closing else None,
    )


class RouteOptimizationCoordinator:
    def __init__(
        self,
        store: RouteStore,
        jobs: JobStore,
        shops: ShopDirectory,
        client: Optional[OptimizationClient],
        *,
        max_waypoints: int | None = None,
        aggregate_tolerance: float | None = None,
    ) -> None:
        self.store = store
        self.jobs = jobs
        self.shops = shops
        self.client = client
        self.max_waypoints = max_waypoints if max_waypoints is not None else settings.optimizer_max_waypoints
        self.aggregate_tolerance = (
            aggregate_tolerance if aggregate_tolerance is not None else settings.aggregate_tolerance
        )

    def _resolve_origin(self, route: Route, first_stop_point: Point) -> Point:
        if route.start_location and route.start_location.point:
            return route.start_location.point
        home = self.shops.get_home_location(route.shop_id)
        if home and home.point:
            return home.point
        return first_stop_point

    def _split_by_coordinate(self, stops: Sequence[Stop]) -> tuple[list[tuple[Stop, Point]], list[Stop]]:
        jobs = self.jobs.get_jobs(stop.job_id for stop in stops)
        geocoded: list[tuple[Stop, Point]] = []
        ungeocoded: list[Stop] = []
        for stop in stops:
            job = jobs.get(stop.job_id)
            if job is not None and job.coordinate is not None:
                geocoded.append((stop, job.coordinate))
            else:
                ungeocoded.append(stop)
        return geocoded, ungeocoded

    def optimize(self, route_id: str) -> Route:
        run = OptimizationRun(route_id)
        route = self.store.get_route(route_id)
        if route is None:
            raise NotFound("Route", route_id)
        ensure_route_editable(route)

        stops = self.store.list_stops(route_id)
        geocoded, ungeocoded = self._split_by_coordinate(stops)
        if len(geocoded) < 2:
            raise InsufficientStops(route_id, len(geocoded))
        if len(geocoded) > self.max_waypoints:
            raise TooManyStops(route_id, len(geocoded), self.max_waypoints)
        if ungeocoded:
            logger.info(
                f"Route {route_id}: {len(ungeocoded)} stop(s) without coordinates kept unordered at the tail"
            )

        origin = self._resolve_origin(route, geocoded[0][1])
        run.advance("requesting")
        try:
            if self.client is None:
                raise ProviderError("Trip optimization provider is not configured.")
            try:
                result = self.client.optimize(
                    origin,
                    [(stop.id, point) for stop, point in geocoded],
                    return_to_origin=True,
                )
            except (httpx.HTTPError, ValueError) as exc:
                raise ProviderError(f"Trip optimization failed: {exc}") from exc
            plan = build_reconciliation_plan(
                route_id,
                [stop for stop, _ in geocoded],
                ungeocoded,
                result,
                self.aggregate_tolerance,
            )
        except ProviderError as exc:
            logger.warning(f"Optimization of route {route_id} failed: {exc}")
            run.advance("failed")
            run.advance("idle")
            raise

        run.advance("reconciling")
        try:
            updated = self.store.apply_optimization(plan)
        except RoutePlanningError as exc:
            logger.warning(f"Optimization of route {route_id} not applied: {exc}")
            run.advance("failed")
            run.advance("idle")
            raise
        run.advance("idle")
        logger.info(
            f"Optimized route {route_id}: {len(geocoded)} stops, "
            f"{updated.total_distance:.2f} mi, {updated.total_duration:.1f} min"
        )
        return updated
