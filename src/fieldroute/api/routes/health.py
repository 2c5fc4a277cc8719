"""Liveness and dependency checks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from ...config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    return {"status": "ok"}


@router.get("/health/optimizer", status_code=status.HTTP_200_OK)
def health_optimizer() -> dict:
    """Probe the trip optimization provider with a two-point trip."""
    if not settings.optimizer_base_url:
        return {"service": settings.optimizer_service, "configured": False, "healthy": False}
    # imported here so a broken provider config never blocks startup
    from ...services.routing.optimization_client import check_health

    return {"service": settings.optimizer_service, "configured": True, "healthy": check_health()}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def health_database() -> dict:
    """Report whether Supabase is reachable and how many routes and stops it holds."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if supabase is None:
        return {
            "configured": False,
            "message": "Supabase not configured; routes are kept in memory. "
            "Set FIELDROUTE_SUPABASE_URL and FIELDROUTE_SUPABASE_KEY to persist them.",
        }

    try:
        counts = {
            table: supabase.table(table).select("id", count="exact").limit(1).execute().count or 0
            for table in ("routes", "route_stops")
        }
    except Exception as exc:
        logger.warning(f"Database health check failed: {exc}")
        return {"configured": True, "connected": False, "error": str(exc)}
    return {"configured": True, "connected": True, "routes_count": counts["routes"], "stops_count": counts["route_stops"]}
