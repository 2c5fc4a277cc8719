from datetime import date

import pytest

from src.fieldroute.data.jobs_repository import InMemoryJobStore
from src.fieldroute.data.shop_repository import ShopDirectory
from src.fieldroute.persistence.memory import InMemoryRouteStore
from src.fieldroute.services.routing.service import RoutePlanningService
from tests.factories import SHOP, SHOP_HOME, StubOptimizer, make_job


@pytest.fixture
def jobs() -> InMemoryJobStore:
    return InMemoryJobStore(
        [
            make_job("J1", 21.51, 39.21),
            make_job("J2", 21.52, 39.22),
            make_job("J3", 21.53, 39.23),
            make_job("J4", None, None),
            make_job("J5", 21.55, 39.25, status="pending", scheduled=date(2025, 3, 6)),
        ]
    )


@pytest.fixture
def store() -> InMemoryRouteStore:
    return InMemoryRouteStore()


@pytest.fixture
def optimizer() -> StubOptimizer:
    return StubOptimizer()


@pytest.fixture
def service(store, jobs, optimizer) -> RoutePlanningService:
    return RoutePlanningService(
        store,
        jobs,
        ShopDirectory({SHOP: SHOP_HOME}),
        optimizer,
        append_max_attempts=3,
        max_waypoints=12,
        aggregate_tolerance=0.05,
    )
