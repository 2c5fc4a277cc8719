"""Typed failures raised by the route planning engine."""

from __future__ import annotations


class RoutePlanningError(Exception):
    """Base class for every error the engine reports to its callers."""

    code = "route_planning_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class NotFound(RoutePlanningError):
    code = "not_found"

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found.")
        self.kind = kind
        self.identifier = identifier


class JobAlreadyAssigned(RoutePlanningError):
    code = "job_already_assigned"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' is already assigned to a route stop.")
        self.job_id = job_id


class JobNotAssignable(RoutePlanningError):
    code = "job_not_assignable"

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"Job '{job_id}' has status '{status}' and cannot be assigned to a route.")
        self.job_id = job_id
        self.status = status


class RouteNotEmpty(RoutePlanningError):
    code = "route_not_empty"

    def __init__(self, route_id: str, total_stops: int) -> None:
        super().__init__(f"Route '{route_id}' still has {total_stops} stop(s) and cannot be deleted.")
        self.route_id = route_id
        self.total_stops = total_stops


class InsufficientStops(RoutePlanningError):
    code = "insufficient_stops"

    def __init__(self, route_id: str, geocoded: int) -> None:
        super().__init__(
            f"Route '{route_id}' has {geocoded} geocoded stop(s); at least 2 are required to optimize."
        )
        self.route_id = route_id
        self.geocoded = geocoded


class TooManyStops(RoutePlanningError):
    code = "too_many_stops"

    def __init__(self, route_id: str, geocoded: int, limit: int) -> None:
        super().__init__(
            f"Route '{route_id}' has {geocoded} geocoded stops; the optimizer accepts at most {limit}."
        )
        self.route_id = route_id
        self.geocoded = geocoded
        self.limit = limit


class RouteBusy(RoutePlanningError):
    code = "route_busy"
    retryable = True

    def __init__(self, route_id: str) -> None:
        super().__init__(f"Route '{route_id}' is being modified by another request. Try again.")
        self.route_id = route_id


class RouteChanged(RoutePlanningError):
    code = "route_changed"
    retryable = True

    def __init__(self, route_id: str, reason: str = "its stops changed while the request was in flight") -> None:
        super().__init__(f"Route '{route_id}' was not updated: {reason}.")
        self.route_id = route_id


class RouteAlreadyCompleted(RoutePlanningError):
    code = "route_already_completed"

    def __init__(self, route_id: str) -> None:
        super().__init__(f"Route '{route_id}' is completed and can no longer be changed.")
        self.route_id = route_id


class InvalidRouteTransition(RoutePlanningError):
    code = "invalid_route_transition"

    def __init__(self, route_id: str, current: str, requested: str) -> None:
        super().__init__(f"Route '{route_id}' cannot move from '{current}' to '{requested}'.")
        self.route_id = route_id
        self.current = current
        self.requested = requested


class InvalidCrew(RoutePlanningError):
    code = "invalid_crew"


class ProviderError(RoutePlanningError):
    """The optimization provider failed, timed out or answered with an unusable result."""

    code = "provider_error"
    retryable = True
