"""Route planning orchestration service."""

from __future__ import annotations

import functools
import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from ...config import settings
from ...data.jobs_repository import InMemoryJobStore, JobStore, SupabaseJobStore
from ...data.shop_repository import ShopDirectory, SupabaseShopDirectory
from ...db.supabase import get_supabase_client
from ...models.domain import STOP_STATUSES, CrewMember, Job, Route, Stop
from ...persistence.base import RouteStore, StopOrderConflict
from ...persistence.database import SupabaseRouteStore
from ...persistence.memory import InMemoryRouteStore
from .assignment import AssignmentResolver
from .coordinator import RouteOptimizationCoordinator
from .errors import JobNotAssignable, NotFound, RouteBusy
from .invariants import check_route_transition, ensure_route_editable, validate_crew
from .optimization_client import OptimizationClient, TripOptimizationClient

logger = logging.getLogger(__name__)


class RoutePlanningService:
    """Operations exposed to the route planning surface.

    The service holds no per-user state: every call names the shop, route,
    stop or job it acts on.
    """

    def __init__(
        self,
        store: RouteStore,
        jobs: JobStore,
        shops: ShopDirectory,
        optimizer: Optional[OptimizationClient] = None,
        *,
        append_max_attempts: int | None = None,
        max_waypoints: int | None = None,
        aggregate_tolerance: float | None = None,
    ) -> None:
        self.store = store
        self.jobs = jobs
        self.shops = shops
        self.resolver = AssignmentResolver(jobs, store)
        self.coordinator = RouteOptimizationCoordinator(
            store,
            jobs,
            shops,
            optimizer,
            max_waypoints=max_waypoints,
            aggregate_tolerance=aggregate_tolerance,
        )
        self.append_max_attempts = (
            append_max_attempts if append_max_attempts is not None else settings.append_max_attempts
        )

    def _require_route(self, route_id: str) -> Route:
        route = self.store.get_route(route_id)
        if route is None:
            raise NotFound("Route", route_id)
        return route

    def _require_stop(self, stop_id: str) -> Stop:
        stop = self.store.get_stop(stop_id)
        if stop is None:
            raise NotFound("Stop", stop_id)
        return stop

    def list_unassigned_jobs(self, shop_id: str, date_from: date, date_to: date) -> list[Job]:
        return self.resolver.list_unassigned_jobs(shop_id, date_from, date_to)

    def list_routes_for_date_range(self, shop_id: str, date_from: date, date_to: date) -> list[Route]:
        if date_from > date_to:
            raise ValueError(f"date_from {date_from} is after date_to {date_to}.")
        return self.store.find_routes(shop_id, date_from, date_to)

    def get_route_detail(self, route_id: str) -> tuple[Route, list[Stop]]:
        route = self._require_route(route_id)
        return route, self.store.list_stops(route_id)

    def find_or_create_route(self, shop_id: str, route_date: date, name: Optional[str] = None) -> Route:
        """Return the shop's first route for the date, creating a planned route if there is none."""
        existing = self.store.find_routes(shop_id, route_date, route_date)
        if existing:
            return existing[0]
        home = self.shops.get_home_location(shop_id)
        route = self.store.create_route(
            shop_id=shop_id,
            route_date=route_date,
            name=name,
            start_location=home,
        )
        logger.info(f"Created route {route.id} for shop {shop_id} on {route_date.isoformat()}")
        return route

    def delete_route(self, route_id: str) -> None:
        self.store.delete_route_if_empty(route_id)
        logger.info(f"Deleted route {route_id}")

    def assign_crew(self, route_id: str, crew: Iterable[CrewMember | dict]) -> Route:
        members = validate_crew(crew)
        route = self._require_route(route_id)
        ensure_route_editable(route)
        return self.store.update_route_crew(route_id, members)

    def append_stop(self, route_id: str, job_id: str) -> Stop:
        route = self._require_route(route_id)
        ensure_route_editable(route)
        job = self.jobs.get_job(job_id)
        if job is None or job.shop_id != route.shop_id:
            raise NotFound("Job", job_id)
        if not job.is_assignable:
            raise JobNotAssignable(job_id, job.status)

        for attempt in range(1, self.append_max_attempts + 1):
            try:
                stop = self.store.append_stop(route_id, job_id)
            except StopOrderConflict:
                logger.warning(
                    f"Stop order conflict appending job {job_id} to route {route_id} "
                    f"(attempt {attempt}/{self.append_max_attempts})"
                )
                continue
            logger.info(f"Appended job {job_id} to route {route_id} as stop {stop.stop_order}")
            return stop
        raise RouteBusy(route_id)

    def remove_stop(self, stop_id: str) -> Stop:
        removed = self.store.remove_stop(stop_id)
        logger.info(f"Removed stop {stop_id} (job {removed.job_id}) from route {removed.route_id}")
        return removed

    def update_stop_status(self, stop_id: str, status: str) -> Stop:
        """Field check-in path; never touches ordering or route aggregates."""
        if status not in STOP_STATUSES:
            raise ValueError(f"Unknown stop status '{status}'.")
        stop = self._require_stop(stop_id)
        actual_arrival = None
        if status == "arrived" and stop.actual_arrival is None:
            actual_arrival = datetime.now(timezone.utc)
        return self.store.update_stop_status(stop_id, status, actual_arrival)

    def set_route_status(self, route_id: str, status: str) -> Route:
        route = self._require_route(route_id)
        check_route_transition(route_id, route.status, status)
        updated = self.store.update_route_status(route_id, route.status, status)
        logger.info(f"Route {route_id} status {route.status} -> {status}")
        return updated

    def optimize(self, route_id: str) -> Route:
        return self.coordinator.optimize(route_id)


def _build_optimizer() -> Optional[OptimizationClient]:
    if not settings.optimizer_base_url:
        logger.warning("Trip optimization base URL not configured - optimize requests will fail")
        return None
    return TripOptimizationClient()


@functools.lru_cache(maxsize=1)
def get_planning_service() -> RoutePlanningService:
    """Build the process-wide service, backed by Supabase when it is configured."""
    supabase = get_supabase_client()
    if supabase is not None:
        return RoutePlanningService(
            SupabaseRouteStore(supabase),
            SupabaseJobStore(supabase),
            SupabaseShopDirectory(supabase),
            _build_optimizer(),
        )
    logger.info("Supabase not configured - using in-memory route store")
    return RoutePlanningService(InMemoryRouteStore(), InMemoryJobStore(), ShopDirectory(), _build_optimizer())
