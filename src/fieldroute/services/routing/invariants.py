"""Invariant and validation helpers shared by the stores and the planning service."""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Sequence

from ...models.domain import CrewMember, Route, Stop
from .errors import InvalidCrew, InvalidRouteTransition, RouteAlreadyCompleted

ALLOWED_ROUTE_TRANSITIONS: frozenset[tuple[str, str]] = frozenset(
    {
        ("planned", "in_progress"),
        ("in_progress", "completed"),
        # retroactive entry of routes that were already serviced
        ("planned", "completed"),
    }
)


def check_route_transition(route_id: str, current: str, requested: str) -> None:
    if current == "completed":
        raise RouteAlreadyCompleted(route_id)
    if (current, requested) not in ALLOWED_ROUTE_TRANSITIONS:
        raise InvalidRouteTransition(route_id, current, requested)


def ensure_route_editable(route: Route) -> None:
    if route.status == "completed":
        raise RouteAlreadyCompleted(route.id)


def validate_crew(crew: Iterable[CrewMember | dict]) -> list[CrewMember]:
    """Normalize a crew list into typed members; ids must be non-empty and unique."""
    members: list[CrewMember] = []
    seen: set[str] = set()
    for entry in crew:
        if isinstance(entry, dict):
            try:
                entry = CrewMember(id=str(entry["id"]), display_name=str(entry.get("display_name") or ""))
            except KeyError as exc:
                raise InvalidCrew("Crew member is missing an 'id'.") from exc
        member_id = entry.id.strip()
        if not member_id:
            raise InvalidCrew("Crew member id must not be empty.")
        if member_id in seen:
            raise InvalidCrew(f"Crew member '{member_id}' is listed more than once.")
        seen.add(member_id)
        members.append(CrewMember(id=member_id, display_name=entry.display_name.strip() or member_id))
    return members


def contiguous_order_violations(stops: Sequence[Stop]) -> list[str]:
    """Describe every way the stop orders of one route differ from 1..N."""
    problems: list[str] = []
    counts = Counter(stop.stop_order for stop in stops)
    duplicates = sorted(order for order, count in counts.items() if count > 1)
    if duplicates:
        problems.append(f"duplicate stop_order values: {duplicates}")
    expected = set(range(1, len(stops) + 1))
    missing = sorted(expected - counts.keys())
    if missing:
        problems.append(f"missing stop_order values: {missing}")
    unexpected = sorted(counts.keys() - expected)
    if unexpected:
        problems.append(f"out of range stop_order values: {unexpected}")
    return problems


def duplicate_job_assignments(stops: Iterable[Stop]) -> dict[str, int]:
    counts = Counter(stop.job_id for stop in stops)
    return {job_id: count for job_id, count in counts.items() if count > 1}


def _close(a: float, b: float, tolerance: float) -> bool:
    return math.isclose(a, b, abs_tol=tolerance)


def aggregates_consistent(route: Route, stops: Sequence[Stop], tolerance: float = 1e-6) -> bool:
    """True when the cached totals are null together or match the recorded legs."""
    if route.total_distance is None and route.total_duration is None:
        return True
    if route.total_distance is None or route.total_duration is None:
        return False
    leg_distance = sum(stop.distance_from_previous or 0.0 for stop in stops) + (route.return_distance or 0.0)
    leg_duration = sum(stop.drive_time_from_previous or 0.0 for stop in stops) + (route.return_duration or 0.0)
    return _close(route.total_distance, leg_distance, tolerance) and _close(
        route.total_duration, leg_duration, tolerance
    )


def route_violations(route: Route, stops: Sequence[Stop], tolerance: float = 1e-6) -> list[str]:
    """Collect every invariant breach for a route and its stops (used by tests and diagnostics)."""
    problems = contiguous_order_violations(stops)
    if route.total_stops != len(stops):
        problems.append(f"total_stops is {route.total_stops} but route has {len(stops)} stops")
    if any(stop.route_id != route.id for stop in stops):
        problems.append("stop list contains stops of another route")
    if not aggregates_consistent(route, stops, tolerance):
        problems.append("cached aggregates do not match recorded leg metrics")
    return problems
