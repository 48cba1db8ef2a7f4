# tests/conftest.py
from datetime import date, timedelta
from typing import Any, Callable

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from compsengine.adapters.clients.batchdata import BatchDataClient, BatchDataConfig
from compsengine.adapters.clients.http_resilience import HttpPolicy
from compsengine.models import Base
from compsengine.service_layer.comparables import reset_global_stats


@pytest.fixture(autouse=True)
async def _reset_db(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    reset_global_stats()
    yield


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


def _months_ago(n: int) -> str:
    return (date.today() - timedelta(days=30 * n)).isoformat()


@pytest.fixture
def raw_candidate() -> Callable[..., dict[str, Any]]:
    """
    Builds a BatchData-shaped property object. Only the fields you pass are set,
    so tests can exercise the defaults table too.
    """

    def _make(
        street: str = "200 Oak Ave",
        *,
        price: int | None = 450_000,
        beds: int | None = 3,
        baths: float | None = 2.0,
        sqft: int | None = 1750,
        sold_months_ago: int | None = 6,
        distance: float | None = 0.3,
        property_type: str | None = "Single Family",
        **extra: Any,
    ) -> dict[str, Any]:
        d: dict[str, Any] = {
            "_id": f"bd-{street.split()[0]}-{street.split()[1].lower()}",
            "address": {"street": street, "city": "Springfield", "state": "IL", "zip": "62701"},
        }
        building: dict[str, Any] = {}
        if beds is not None:
            building["bedroomCount"] = beds
        if baths is not None:
            building["bathroomCount"] = baths
        if sqft is not None:
            building["totalBuildingAreaSquareFeet"] = sqft
        if property_type is not None:
            building["propertyType"] = property_type
        if building:
            d["building"] = building
        if price is not None:
            d["intel"] = {"lastSoldPrice": price}
            if sold_months_ago is not None:
                d["intel"]["lastSoldDate"] = _months_ago(sold_months_ago)
        if distance is not None:
            d["distance"] = distance
        d.update(extra)
        return d

    return _make


@pytest.fixture
def fast_policy() -> HttpPolicy:
    return HttpPolicy(timeout_s=5.0, max_retries=0, backoff_base_s=0.0, rate_limit_rps=0.0)


@pytest.fixture
def make_client(fast_policy) -> Callable[..., BatchDataClient]:
    def _make(handler: Callable[[httpx.Request], httpx.Response], **cfg: Any) -> BatchDataClient:
        cfg.setdefault("api_key", "test-key")
        cfg.setdefault("http", fast_policy)
        return BatchDataClient(BatchDataConfig(**cfg), transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def search_calls() -> list[dict[str, Any]]:
    """Recorded request bodies, appended by handlers that want them."""
    return []
