"""HTTP client for OSRM-compatible trip optimization services."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Sequence

import httpx

from ...config import settings
from ...models.domain import Point
from .errors import ProviderError
from .models import Leg, OptimizationResult

METERS_PER_MILE = 1609.344

logger = logging.getLogger(__name__)


class OptimizationClient(ABC):
    """Contract of the external trip optimization provider."""

    @abstractmethod
    def optimize(
        self,
        origin: Point,
        destinations: Sequence[tuple[str, Point]],
        return_to_origin: bool = True,
    ) -> OptimizationResult:
        """Return a visiting order over the destination ids plus per-leg and total metrics.

        Any failure, including timeouts and unusable responses, raises ProviderError.
        """
        raise NotImplementedError


def _coordinate_string(points: Sequence[Point]) -> str:
    return ";".join(f"{point.longitude},{point.latitude}" for point in points)


def parse_trip_response(
    data: dict,
    destination_ids: Sequence[str],
    return_to_origin: bool,
) -> OptimizationResult:
    """Translate an OSRM/Mapbox trip payload whose first waypoint is the origin.

    ``waypoints[k].waypoint_index`` is the position of input coordinate ``k``
    in the trip, so sorting the destinations by it yields the visit order.
    """
    if data.get("code") != "Ok":
        message = data.get("message") or data.get("code") or "unknown error"
        raise ProviderError(f"Trip optimization failed: {message}")

    trips = data.get("trips") or []
    waypoints = data.get("waypoints") or []
    if not trips:
        raise ProviderError("Trip optimization returned no trips.")
    if len(waypoints) != len(destination_ids) + 1:
        raise ProviderError(
            f"Trip optimization returned {len(waypoints)} waypoints for {len(destination_ids) + 1} coordinates."
        )

    try:
        positions = [int(waypoint["waypoint_index"]) for waypoint in waypoints]
        trip = trips[0]
        legs = [
            Leg(
                distance_miles=float(leg["distance"]) / METERS_PER_MILE,
                duration_minutes=float(leg["duration"]) / 60.0,
            )
            for leg in trip.get("legs") or []
        ]
        aggregate_distance = float(trip["distance"]) / METERS_PER_MILE
        aggregate_duration = float(trip["duration"]) / 60.0
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed trip optimization response: {exc}") from exc

    if positions[0] != 0:
        raise ProviderError("Trip optimization did not start at the origin.")
    ranked = sorted(range(1, len(positions)), key=lambda k: positions[k])
    visit_order = [destination_ids[k - 1] for k in ranked]

    expected_legs = len(destination_ids) + (1 if return_to_origin else 0)
    if len(legs) != expected_legs:
        raise ProviderError(f"Trip optimization returned {len(legs)} legs; expected {expected_legs}.")

    return OptimizationResult(
        visit_order=visit_order,
        legs=legs,
        aggregate_distance_miles=aggregate_distance,
        aggregate_duration_minutes=aggregate_duration,
    )


class TripOptimizationClient(OptimizationClient):
    """Calls ``/trip/v1`` on OSRM or ``/optimized-trips/v1`` on Mapbox.

    Both services share one response format. The origin is always sent as the
    first coordinate with ``source=first``. A one-way trip uses
    ``destination=last`` because neither service supports an open-ended
    one-way trip.
    """

    def __init__(
        self,
        base_url: str | None = None,
        service: str | None = None,
        profile: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.optimizer_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("Trip optimization base URL is not configured.")
        self.service = service or settings.optimizer_service
        self.profile = profile or settings.optimizer_profile
        self.access_token = access_token if access_token is not None else settings.optimizer_access_token
        self.timeout = timeout if timeout is not None else settings.optimizer_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.optimizer_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.optimizer_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            transport=self._transport,
        )

    def _trip_url(self, coordinate_str: str) -> str:
        if self.service == "mapbox":
            return f"{self.base_url}/optimized-trips/v1/mapbox/{self.profile}/{coordinate_str}"
        return f"{self.base_url}/trip/v1/{self.profile}/{coordinate_str}"

    def _params(self, return_to_origin: bool) -> dict:
        params = {
            "source": "first",
            "roundtrip": "true" if return_to_origin else "false",
            "overview": "false",
        }
        if not return_to_origin:
            params["destination"] = "last"
        if self.access_token:
            params["access_token"] = self.access_token
        return params

    def _request(self, url: str, params: dict) -> dict:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if response.status_code >= 400:
                        # OSRM reports NoTrip/NoSegment as 400 with a JSON body
                        try:
                            body = response.json()
                        except ValueError:
                            response.raise_for_status()
                        if isinstance(body, dict) and body.get("code"):
                            return body
                        response.raise_for_status()
                    return response.json()
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Trip optimization timed out after {attempt} attempt(s): {e}")
                        raise ProviderError(f"Trip optimization timed out after {self.timeout:.0f}s.") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Trip optimization timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.HTTPError, ValueError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Trip optimization request failed: {e}")
                        raise ProviderError(f"Trip optimization request failed: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Trip optimization request failed, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
        finally:
            client.close()

    def optimize(
        self,
        origin: Point,
        destinations: Sequence[tuple[str, Point]],
        return_to_origin: bool = True,
    ) -> OptimizationResult:
        if not destinations:
            raise ValueError("At least one destination is required for trip optimization.")

        coordinates = [origin, *(point for _, point in destinations)]
        url = self._trip_url(_coordinate_string(coordinates))
        logger.debug(f"Requesting trip optimization for {len(destinations)} destinations from {self.service}")
        data = self._request(url, self._params(return_to_origin))
        return parse_trip_response(data, [stop_id for stop_id, _ in destinations], return_to_origin)


def check_health(base_url: str | None = None, transport: httpx.BaseTransport | None = None) -> bool:
    """Check the provider by optimizing a minimal two-point trip."""
    try:
        client = TripOptimizationClient(base_url=base_url, timeout=5.0, max_retries=0, transport=transport)
        client.optimize(
            Point(52.517037, 13.388860),
            [("probe", Point(52.496891, 13.385983))],
        )
        return True
    except (ValueError, ProviderError):
        return False
