"""Shop home locations, the default start point of every route."""

from __future__ import annotations

import logging
from typing import Optional

from ..models.domain import Location, Point

logger = logging.getLogger(__name__)


class ShopDirectory:
    """Fixed mapping of shop id to home location."""

    def __init__(self, locations: dict[str, Location] | None = None) -> None:
        self._locations = dict(locations or {})

    def get_home_location(self, shop_id: str) -> Optional[Location]:
        return self._locations.get(shop_id)


class SupabaseShopDirectory(ShopDirectory):
    """Reads the home address and coordinates from the ``shops`` table."""

    def __init__(self, client, table: str = "shops") -> None:
        super().__init__()
        self._client = client
        self._table = table

    def get_home_location(self, shop_id: str) -> Optional[Location]:
        cached = self._locations.get(shop_id)
        if cached is not None:
            return cached
        try:
            response = (
                self._client.table(self._table)
                .select("id, address, latitude, longitude")
                .eq("id", shop_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            # shop lookup only supplies a default start point
            logger.warning(f"Failed to load home location for shop {shop_id}: {e}")
            return None
        if not response.data:
            return None
        row = response.data[0]
        point = None
        try:
            if row.get("latitude") is not None and row.get("longitude") is not None:
                point = Point(float(row["latitude"]), float(row["longitude"]))
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid coordinates for shop {shop_id}: {e}")
        location = Location(address=row.get("address"), point=point)
        self._locations[shop_id] = location
        return location
