"""Route planning request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.domain import Job, Location, Route, Stop


class PointModel(BaseModel):
    """Coordinates as stored; range checks happen when jobs are read."""

    latitude: float
    longitude: float


class LocationModel(BaseModel):
    address: Optional[str] = None
    point: Optional[PointModel] = None

    @classmethod
    def from_domain(cls, location: Optional[Location]) -> Optional["LocationModel"]:
        if location is None:
            return None
        point = (
            PointModel(latitude=location.point.latitude, longitude=location.point.longitude)
            if location.point
            else None
        )
        return cls(address=location.address, point=point)


class CrewMemberModel(BaseModel):
    id: str = Field(..., min_length=1)
    display_name: str = ""


class JobModel(BaseModel):
    id: str
    shop_id: str
    job_number: Optional[str] = None
    address: str
    coordinate: Optional[PointModel] = None
    scheduled_date: date
    status: str

    @classmethod
    def from_domain(cls, job: Job) -> "JobModel":
        coordinate = (
            PointModel(latitude=job.coordinate.latitude, longitude=job.coordinate.longitude)
            if job.coordinate
            else None
        )
        return cls(
            id=job.id,
            shop_id=job.shop_id,
            job_number=job.job_number,
            address=job.address,
            coordinate=coordinate,
            scheduled_date=job.scheduled_date,
            status=job.status,
        )


class StopModel(BaseModel):
    id: str
    route_id: str
    job_id: str
    stop_order: int
    status: str
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    drive_time_from_previous: Optional[float] = Field(None, description="Minutes from the previous point.")
    distance_from_previous: Optional[float] = Field(None, description="Miles from the previous point.")
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, stop: Stop) -> "StopModel":
        return cls(
            id=stop.id,
            route_id=stop.route_id,
            job_id=stop.job_id,
            stop_order=stop.stop_order,
            status=stop.status,
            estimated_arrival=stop.estimated_arrival,
            actual_arrival=stop.actual_arrival,
            drive_time_from_previous=stop.drive_time_from_previous,
            distance_from_previous=stop.distance_from_previous,
            notes=stop.notes,
        )


class RouteModel(BaseModel):
    id: str
    shop_id: str
    route_date: date
    name: Optional[str] = None
    status: str
    assigned_crew: List[CrewMemberModel] = Field(default_factory=list)
    total_stops: int
    total_distance: Optional[float] = Field(None, description="Miles, null until optimized.")
    total_duration: Optional[float] = Field(None, description="Minutes, null until optimized.")
    return_distance: Optional[float] = None
    return_duration: Optional[float] = None
    start_location: Optional[LocationModel] = None
    end_location: Optional[LocationModel] = None
    notes: Optional[str] = None

    @classmethod
    def from_domain(cls, route: Route) -> "RouteModel":
        return cls(
            id=route.id,
            shop_id=route.shop_id,
            route_date=route.route_date,
            name=route.name,
            status=route.status,
            assigned_crew=[
                CrewMemberModel(id=member.id, display_name=member.display_name) for member in route.assigned_crew
            ],
            total_stops=route.total_stops,
            total_distance=route.total_distance,
            total_duration=route.total_duration,
            return_distance=route.return_distance,
            return_duration=route.return_duration,
            start_location=LocationModel.from_domain(route.start_location),
            end_location=LocationModel.from_domain(route.end_location),
            notes=route.notes,
        )


class RouteDetailResponse(BaseModel):
    route: RouteModel
    stops: List[StopModel]


class FindOrCreateRouteRequest(BaseModel):
    shop_id: str = Field(..., min_length=1)
    route_date: date
    name: Optional[str] = Field(default=None, description="Display label used only when a route is created.")


class AppendStopRequest(BaseModel):
    job_id: str = Field(..., min_length=1)


class RouteStatusRequest(BaseModel):
    status: Literal["planned", "in_progress", "completed"]


class StopStatusRequest(BaseModel):
    status: Literal["pending", "arrived", "completed", "skipped"]


class AssignCrewRequest(BaseModel):
    crew: List[CrewMemberModel] = Field(default_factory=list)
