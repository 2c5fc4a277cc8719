"""Storage contract for routes and stops."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from ..models.domain import CrewMember, Location, Route, Stop
from ..services.routing.models import ReconciliationPlan


class RouteStore(ABC):
    """Contract every route/stop backend implements.

    Each mutating method is atomic against the backend: its preconditions are
    checked and its writes applied as a single unit, so callers never observe
    a half-applied change. Backends enforce single assignment of a job across
    all stops at the storage layer and serialize stop ordering per route.
    """

    @abstractmethod
    def get_route(self, route_id: str) -> Optional[Route]:
        raise NotImplementedError

    @abstractmethod
    def find_routes(self, shop_id: str, date_from: date, date_to: date) -> list[Route]:
        """Routes of a shop with route_date in the inclusive range, oldest date and creation first."""
        raise NotImplementedError

    @abstractmethod
    def create_route(
        self,
        *,
        shop_id: str,
        route_date: date,
        name: Optional[str] = None,
        start_location: Optional[Location] = None,
        end_location: Optional[Location] = None,
    ) -> Route:
        raise NotImplementedError

    @abstractmethod
    def delete_route_if_empty(self, route_id: str) -> None:
        """Raise NotFound or RouteNotEmpty instead of deleting when not allowed."""
        raise NotImplementedError

    @abstractmethod
    def update_route_status(self, route_id: str, expected: str, status: str) -> Route:
        """Compare-and-set the route status; raise RouteChanged if it is no longer ``expected``."""
        raise NotImplementedError

    @abstractmethod
    def update_route_crew(self, route_id: str, crew: Sequence[CrewMember]) -> Route:
        raise NotImplementedError

    @abstractmethod
    def get_stop(self, stop_id: str) -> Optional[Stop]:
        raise NotImplementedError

    @abstractmethod
    def list_stops(self, route_id: str) -> list[Stop]:
        """Stops of a route ordered by stop_order."""
        raise NotImplementedError

    @abstractmethod
    def assigned_job_ids(self, job_ids: Iterable[str]) -> set[str]:
        """The subset of ``job_ids`` referenced by a stop on any route."""
        raise NotImplementedError

    @abstractmethod
    def append_stop(self, route_id: str, job_id: str) -> Stop:
        """Insert a pending stop at the end of the route and bump total_stops.

        Raises JobAlreadyAssigned when the job already has a stop anywhere and
        StopOrderConflict when another writer took the computed order first.
        """
        raise NotImplementedError

    @abstractmethod
    def remove_stop(self, stop_id: str) -> Stop:
        """Delete a stop, close the gap in the ordering and decrement total_stops."""
        raise NotImplementedError

    @abstractmethod
    def update_stop_status(
        self, stop_id: str, status: str, actual_arrival: Optional[datetime] = None
    ) -> Stop:
        raise NotImplementedError

    @abstractmethod
    def apply_optimization(self, plan: ReconciliationPlan) -> Route:
        """Write new orders, leg metrics and aggregates in one transaction.

        Raises RouteChanged if the route's current stop ids differ from
        ``plan.expected_stop_ids``.
        """
        raise NotImplementedError


class StopOrderConflict(Exception):
    """Another writer claimed the stop order computed for an append; safe to retry."""

    def __init__(self, route_id: str) -> None:
        super().__init__(f"Stop order conflict on route '{route_id}'.")
        self.route_id = route_id
