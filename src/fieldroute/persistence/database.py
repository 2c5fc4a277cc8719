"""Supabase persistence for routes and stops.

Multi-row mutations go through the Postgres functions in
``supabase/migrations`` so each one runs in a single transaction under a
per-route advisory lock. Single-row writes use the table API directly.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, NoReturn, Optional, Sequence

from postgrest.exceptions import APIError

from ..models.domain import CrewMember, Location, Point, Route, Stop
from ..services.routing.errors import (
    JobAlreadyAssigned,
    JobNotAssignable,
    NotFound,
    RouteAlreadyCompleted,
    RouteBusy,
    RouteChanged,
    RouteNotEmpty,
)
from ..services.routing.models import ReconciliationPlan
from .base import RouteStore, StopOrderConflict

logger = logging.getLogger(__name__)

ROUTES_TABLE = "routes"
STOPS_TABLE = "route_stops"
JOB_ID_CHUNK = 200


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _location_from_row(row: dict, prefix: str) -> Optional[Location]:
    address = row.get(f"{prefix}_location")
    latitude = row.get(f"{prefix}_latitude")
    longitude = row.get(f"{prefix}_longitude")
    point = Point(float(latitude), float(longitude)) if latitude is not None and longitude is not None else None
    if address is None and point is None:
        return None
    return Location(address=address, point=point)


def _location_to_row(location: Optional[Location], prefix: str) -> dict:
    point = location.point if location else None
    return {
        f"{prefix}_location": location.address if location else None,
        f"{prefix}_latitude": point.latitude if point else None,
        f"{prefix}_longitude": point.longitude if point else None,
    }


def route_from_row(row: dict) -> Route:
    crew = [
        CrewMember(id=str(member["id"]), display_name=str(member.get("display_name") or member["id"]))
        for member in (row.get("assigned_crew") or [])
        if isinstance(member, dict) and member.get("id")
    ]
    return Route(
        id=str(row["id"]),
        shop_id=str(row["shop_id"]),
        route_date=_parse_date(row["route_date"]),
        name=row.get("route_name"),
        status=row.get("status") or "planned",
        assigned_crew=crew,
        total_stops=int(row.get("total_stops") or 0),
        total_distance=_optional_float(row.get("total_distance_miles")),
        total_duration=_optional_float(row.get("estimated_duration_minutes")),
        return_distance=_optional_float(row.get("return_distance_miles")),
        return_duration=_optional_float(row.get("return_duration_minutes")),
        start_location=_location_from_row(row, "start"),
        end_location=_location_from_row(row, "end"),
        notes=row.get("notes"),
        created_at=_parse_datetime(row.get("created_at")),
    )


def stop_from_row(row: dict) -> Stop:
    return Stop(
        id=str(row["id"]),
        route_id=str(row["route_id"]),
        job_id=str(row["job_id"]),
        stop_order=int(row["stop_order"]),
        status=row.get("status") or "pending",
        estimated_arrival=_parse_datetime(row.get("estimated_arrival")),
        actual_arrival=_parse_datetime(row.get("actual_arrival")),
        drive_time_from_previous=_optional_float(row.get("drive_time_from_previous")),
        distance_from_previous=_optional_float(row.get("distance_from_previous")),
        notes=row.get("notes"),
    )


def _single_row(data: Any) -> dict:
    if isinstance(data, list):
        if not data:
            raise ValueError("Expected one row from Supabase, got none.")
        return data[0]
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected Supabase payload: {data!r}")
    return data


def raise_domain_error(
    error: APIError,
    *,
    route_id: str | None = None,
    stop_id: str | None = None,
    job_id: str | None = None,
) -> NoReturn:
    """Translate a PostgREST error raised by the route functions into the engine's errors."""
    message = (error.message or "").strip()
    details = str(error.details or "")
    code = str(error.code or "")

    if code == "23505":
        text = f"{message} {details}"
        if "route_stops_job_id_key" in text:
            raise JobAlreadyAssigned(job_id or "unknown") from error
        if "route_stops_route_order_key" in text:
            raise StopOrderConflict(route_id or "unknown") from error
    if code in ("40001", "40P01", "55P03"):
        raise RouteBusy(route_id or "unknown") from error

    if message == "route_not_found":
        raise NotFound("Route", route_id or details) from error
    if message == "stop_not_found":
        raise NotFound("Stop", stop_id or details) from error
    if message == "job_not_found":
        raise NotFound("Job", job_id or details) from error
    if message == "job_not_assignable":
        raise JobNotAssignable(job_id or "unknown", details or "unknown") from error
    if message == "route_completed":
        raise RouteAlreadyCompleted(route_id or details) from error
    if message == "route_not_empty":
        raise RouteNotEmpty(route_id or "unknown", int(details) if details.isdigit() else 0) from error
    if message == "route_changed":
        raise RouteChanged(route_id or "unknown", details or "its stops changed while the request was in flight") from error
    raise error


class SupabaseRouteStore(RouteStore):
    def __init__(self, client) -> None:
        self._client = client

    def _rpc(self, name: str, params: dict, **context: str | None) -> Any:
        try:
            return self._client.rpc(name, params).execute().data
        except APIError as e:
            logger.debug(f"Supabase function {name} failed: {e.code} {e.message}")
            raise_domain_error(e, **context)

    def get_route(self, route_id: str) -> Optional[Route]:
        response = self._client.table(ROUTES_TABLE).select("*").eq("id", route_id).limit(1).execute()
        return route_from_row(response.data[0]) if response.data else None

    def find_routes(self, shop_id: str, date_from: date, date_to: date) -> list[Route]:
        response = (
            self._client.table(ROUTES_TABLE)
            .select("*")
            .eq("shop_id", shop_id)
            .gte("route_date", date_from.isoformat())
            .lte("route_date", date_to.isoformat())
            .order("route_date")
            .order("created_at")
            .execute()
        )
        return [route_from_row(row) for row in response.data or []]

    def create_route(
        self,
        *,
        shop_id: str,
        route_date: date,
        name: Optional[str] = None,
        start_location: Optional[Location] = None,
        end_location: Optional[Location] = None,
    ) -> Route:
        payload = {
            "shop_id": shop_id,
            "route_date": route_date.isoformat(),
            "route_name": name,
            "status": "planned",
            "assigned_crew": [],
            "total_stops": 0,
            **_location_to_row(start_location, "start"),
            **_location_to_row(end_location, "end"),
        }
        response = self._client.table(ROUTES_TABLE).insert(payload).execute()
        return route_from_row(_single_row(response.data))

    def delete_route_if_empty(self, route_id: str) -> None:
        self._rpc("route_delete_if_empty", {"p_route_id": route_id}, route_id=route_id)

    def update_route_status(self, route_id: str, expected: str, status: str) -> Route:
        data = self._rpc(
            "route_set_status",
            {"p_route_id": route_id, "p_expected": expected, "p_status": status},
            route_id=route_id,
        )
        return route_from_row(_single_row(data))

    def update_route_crew(self, route_id: str, crew: Sequence[CrewMember]) -> Route:
        payload = [{"id": member.id, "display_name": member.display_name} for member in crew]
        response = (
            self._client.table(ROUTES_TABLE)
            .update({"assigned_crew": payload})
            .eq("id", route_id)
            .neq("status", "completed")
            .execute()
        )
        if not response.data:
            if self.get_route(route_id) is None:
                raise NotFound("Route", route_id)
            raise RouteAlreadyCompleted(route_id)
        return route_from_row(response.data[0])

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        response = self._client.table(STOPS_TABLE).select("*").eq("id", stop_id).limit(1).execute()
        return stop_from_row(response.data[0]) if response.data else None

    def list_stops(self, route_id: str) -> list[Stop]:
        response = (
            self._client.table(STOPS_TABLE)
            .select("*")
            .eq("route_id", route_id)
            .order("stop_order")
            .execute()
        )
        return [stop_from_row(row) for row in response.data or []]

    def assigned_job_ids(self, job_ids: Iterable[str]) -> set[str]:
        # bounded lookups; PostgREST caps every response at max_rows
        ids = list(dict.fromkeys(job_ids))
        assigned: set[str] = set()
        for start in range(0, len(ids), JOB_ID_CHUNK):
            chunk = ids[start : start + JOB_ID_CHUNK]
            response = self._client.table(STOPS_TABLE).select("job_id").in_("job_id", chunk).execute()
            assigned.update(str(row["job_id"]) for row in response.data or [])
        return assigned

    def append_stop(self, route_id: str, job_id: str) -> Stop:
        data = self._rpc(
            "route_append_stop",
            {"p_route_id": route_id, "p_job_id": job_id},
            route_id=route_id,
            job_id=job_id,
        )
        return stop_from_row(_single_row(data))

    def remove_stop(self, stop_id: str) -> Stop:
        data = self._rpc("route_remove_stop", {"p_stop_id": stop_id}, stop_id=stop_id)
        return stop_from_row(_single_row(data))

    def update_stop_status(
        self, stop_id: str, status: str, actual_arrival: Optional[datetime] = None
    ) -> Stop:
        updates: dict[str, Any] = {"status": status}
        if actual_arrival is not None:
            updates["actual_arrival"] = actual_arrival.isoformat()
        response = self._client.table(STOPS_TABLE).update(updates).eq("id", stop_id).execute()
        if not response.data:
            raise NotFound("Stop", stop_id)
        return stop_from_row(response.data[0])

    def apply_optimization(self, plan: ReconciliationPlan) -> Route:
        params = {
            "p_route_id": plan.route_id,
            "p_expected_stop_ids": sorted(plan.expected_stop_ids),
            "p_placements": [
                {
                    "stop_id": placement.stop_id,
                    "stop_order": placement.stop_order,
                    "distance_from_previous": placement.distance_from_previous,
                    "drive_time_from_previous": placement.drive_time_from_previous,
                }
                for placement in plan.placements
            ],
            "p_total_distance": plan.total_distance,
            "p_total_duration": plan.total_duration,
            "p_return_distance": plan.return_distance,
            "p_return_duration": plan.return_duration,
        }
        data = self._rpc("route_apply_optimization", params, route_id=plan.route_id)
        return route_from_row(_single_row(data))
