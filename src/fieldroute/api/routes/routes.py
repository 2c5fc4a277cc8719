"""Route planning endpoints."""

from __future__ import annotations

import logging
from datetime import date
from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from ...models.domain import CrewMember
from ...schemas.routing import (
    AppendStopRequest,
    AssignCrewRequest,
    FindOrCreateRouteRequest,
    JobModel,
    RouteDetailResponse,
    RouteModel,
    RouteStatusRequest,
    StopModel,
    StopStatusRequest,
)
from ...services.routing import errors
from ...services.routing.service import get_planning_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])

_STATUS_BY_ERROR: tuple[tuple[type[errors.RoutePlanningError], int], ...] = (
    (errors.NotFound, status.HTTP_404_NOT_FOUND),
    (errors.JobAlreadyAssigned, status.HTTP_409_CONFLICT),
    (errors.RouteNotEmpty, status.HTTP_409_CONFLICT),
    (errors.RouteBusy, status.HTTP_409_CONFLICT),
    (errors.RouteChanged, status.HTTP_409_CONFLICT),
    (errors.ProviderError, status.HTTP_502_BAD_GATEWAY),
)


def _http_error(exc: Exception, action: str) -> HTTPException:
    """Map an engine failure onto the HTTP response the planning UI expects."""
    if isinstance(exc, errors.RoutePlanningError):
        code = next(
            (status_code for error_type, status_code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
            status.HTTP_400_BAD_REQUEST,
        )
        return HTTPException(status_code=code, detail=exc.to_dict())
    if isinstance(exc, ValueError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_request", "message": str(exc), "retryable": False},
        )
    logger.exception(f"Error trying to {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "internal_error", "message": f"Failed to {action}: {exc}", "retryable": False},
    )


@router.get("/unassigned-jobs", response_model=List[JobModel], status_code=status.HTTP_200_OK)
def list_unassigned_jobs(
    shop_id: str = Query(..., description="Shop whose jobs are listed"),
    date_from: date = Query(..., description="First scheduled date, inclusive"),
    date_to: date = Query(..., description="Last scheduled date, inclusive"),
) -> List[JobModel]:
    try:
        jobs = get_planning_service().list_unassigned_jobs(shop_id, date_from, date_to)
        return [JobModel.from_domain(job) for job in jobs]
    except Exception as exc:
        raise _http_error(exc, "list unassigned jobs") from exc


@router.get("", response_model=List[RouteModel], status_code=status.HTTP_200_OK)
def list_routes(
    shop_id: str = Query(..., description="Shop whose routes are listed"),
    date_from: date = Query(..., description="First route date, inclusive"),
    date_to: date = Query(..., description="Last route date, inclusive"),
) -> List[RouteModel]:
    try:
        routes = get_planning_service().list_routes_for_date_range(shop_id, date_from, date_to)
    except Exception as exc:
        raise _http_error(exc, "list routes") from exc
    return [RouteModel.from_domain(route) for route in routes]


@router.post("/find-or-create", response_model=RouteModel, status_code=status.HTTP_200_OK)
def find_or_create_route(payload: FindOrCreateRouteRequest) -> RouteModel:
    try:
        route = get_planning_service().find_or_create_route(payload.shop_id, payload.route_date, payload.name)
    except Exception as exc:
        raise _http_error(exc, "find or create route") from exc
    return RouteModel.from_domain(route)


@router.get("/{route_id}", response_model=RouteDetailResponse, status_code=status.HTTP_200_OK)
def get_route(route_id: str) -> RouteDetailResponse:
    try:
        route, stops = get_planning_service().get_route_detail(route_id)
    except Exception as exc:
        raise _http_error(exc, "load route") from exc
    return RouteDetailResponse(
        route=RouteModel.from_domain(route),
        stops=[StopModel.from_domain(stop) for stop in stops],
    )


@router.delete("/{route_id}", status_code=status.HTTP_200_OK)
def delete_route(route_id: str) -> dict:
    try:
        get_planning_service().delete_route(route_id)
    except Exception as exc:
        raise _http_error(exc, "delete route") from exc
    return {"success": True, "message": f"Route {route_id} deleted"}


@router.post("/{route_id}/stops", response_model=StopModel, status_code=status.HTTP_201_CREATED)
def append_stop(route_id: str, payload: AppendStopRequest) -> StopModel:
    try:
        stop = get_planning_service().append_stop(route_id, payload.job_id)
    except Exception as exc:
        raise _http_error(exc, "add job to route") from exc
    return StopModel.from_domain(stop)


@router.delete("/stops/{stop_id}", response_model=StopModel, status_code=status.HTTP_200_OK)
def remove_stop(stop_id: str) -> StopModel:
    """Remove a stop; the job returns to the unassigned pool."""
    try:
        stop = get_planning_service().remove_stop(stop_id)
    except Exception as exc:
        raise _http_error(exc, "remove stop") from exc
    return StopModel.from_domain(stop)


@router.patch("/stops/{stop_id}/status", response_model=StopModel, status_code=status.HTTP_200_OK)
def update_stop_status(stop_id: str, payload: StopStatusRequest) -> StopModel:
    try:
        stop = get_planning_service().update_stop_status(stop_id, payload.status)
    except Exception as exc:
        raise _http_error(exc, "update stop") from exc
    return StopModel.from_domain(stop)


@router.post("/{route_id}/optimize", response_model=RouteDetailResponse, status_code=status.HTTP_200_OK)
def optimize_route(route_id: str) -> RouteDetailResponse:
    service = get_planning_service()
    try:
        route = service.optimize(route_id)
        stops = service.store.list_stops(route_id)
    except Exception as exc:
        raise _http_error(exc, "optimize route") from exc
    return RouteDetailResponse(
        route=RouteModel.from_domain(route),
        stops=[StopModel.from_domain(stop) for stop in stops],
    )


@router.post("/{route_id}/status", response_model=RouteModel, status_code=status.HTTP_200_OK)
def set_route_status(route_id: str, payload: RouteStatusRequest) -> RouteModel:
    try:
        route = get_planning_service().set_route_status(route_id, payload.status)
    except Exception as exc:
        raise _http_error(exc, "update route status") from exc
    return RouteModel.from_domain(route)


@router.put("/{route_id}/crew", response_model=RouteModel, status_code=status.HTTP_200_OK)
def assign_crew(route_id: str, payload: AssignCrewRequest) -> RouteModel:
    crew = [CrewMember(id=member.id, display_name=member.display_name) for member in payload.crew]
    try:
        route = get_planning_service().assign_crew(route_id, crew)
    except Exception as exc:
        raise _http_error(exc, "assign crew") from exc
    return RouteModel.from_domain(route)
