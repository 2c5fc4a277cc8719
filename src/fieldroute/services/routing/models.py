"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(slots=True, frozen=True)
class Leg:
    distance_miles: float
    duration_minutes: float


@dataclass(slots=True)
class OptimizationResult:
    visit_order: List[str]
    legs: List[Leg]
    aggregate_distance_miles: float
    aggregate_duration_minutes: float


@dataclass(slots=True, frozen=True)
class StopPlacement:
    stop_id: str
    stop_order: int
    distance_from_previous: Optional[float]
    drive_time_from_previous: Optional[float]


@dataclass(slots=True)
class ReconciliationPlan:
    """Everything the store writes in one optimization commit."""

    route_id: str
    expected_stop_ids: frozenset[str]
    placements: List[StopPlacement]
    total_distance: float
    total_duration: float
    return_distance: Optional[float]
    return_duration: Optional[float]
