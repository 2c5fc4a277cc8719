"""Domain models for jobs, routes and stops."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

JobStatus = Literal["pending", "scheduled", "in_progress", "completed", "cancelled"]
RouteStatus = Literal["planned", "in_progress", "completed"]
StopStatus = Literal["pending", "arrived", "completed", "skipped"]

JOB_STATUSES: tuple[str, ...] = ("pending", "scheduled", "in_progress", "completed", "cancelled")
ASSIGNABLE_JOB_STATUSES: tuple[str, ...] = ("pending", "scheduled", "in_progress")
ROUTE_STATUSES: tuple[str, ...] = ("planned", "in_progress", "completed")
STOP_STATUSES: tuple[str, ...] = ("pending", "arrived", "completed", "skipped")


@dataclass(slots=True, frozen=True)
class Point:
    latitude: float
    longitude: float


@dataclass(slots=True, frozen=True)
class Location:
    """An address with an optional geocoded point."""

    address: Optional[str] = None
    point: Optional[Point] = None


@dataclass(slots=True)
class Job:
    """A service job as seen by the route planner. Owned by the job store."""

    id: str
    shop_id: str
    address: str
    scheduled_date: date
    status: JobStatus
    coordinate: Optional[Point] = None
    job_number: Optional[str] = None

    @property
    def is_assignable(self) -> bool:
        return self.status in ASSIGNABLE_JOB_STATUSES


@dataclass(slots=True, frozen=True)
class CrewMember:
    id: str
    display_name: str


@dataclass(slots=True)
class Route:
    id: str
    shop_id: str
    route_date: date
    status: RouteStatus = "planned"
    name: Optional[str] = None
    assigned_crew: list[CrewMember] = field(default_factory=list)
    total_stops: int = 0
    total_distance: Optional[float] = None
    total_duration: Optional[float] = None
    return_distance: Optional[float] = None
    return_duration: Optional[float] = None
    start_location: Optional[Location] = None
    end_location: Optional[Location] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_optimized(self) -> bool:
        return self.total_distance is not None and self.total_duration is not None


@dataclass(slots=True)
class Stop:
    id: str
    route_id: str
    job_id: str
    stop_order: int
    status: StopStatus = "pending"
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    drive_time_from_previous: Optional[float] = None
    distance_from_previous: Optional[float] = None
    notes: Optional[str] = None

    @property
    def has_leg_metrics(self) -> bool:
        return self.distance_from_previous is not None or self.drive_time_from_previous is not None
