"""
Shared test fixtures.

Uses a throwaway SQLite database (via aiosqlite) and an in-memory Redis
double so tests run without Docker / PostgreSQL / Redis.  The production
ORM models are used unchanged; SQLite simply ignores ``FOR UPDATE``, and
the aggregate locks still serialise writers through ``FakeRedis``.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from carpool.config import Settings
from carpool.domain.entities import Location, Ride, RideFare, Route
from carpool.domain.enums import PassengerStatus, PaymentMethod
from carpool.infrastructure.database import Base
from carpool.infrastructure.models import UserModel
from carpool.services.registry import ServiceRegistry

# Koramangala -> Whitefield, Bengaluru
START = Location(12.9352, 77.6245, "Koramangala")
END = Location(12.9698, 77.7500, "Whitefield")


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for locks and publishing."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.published: list[tuple[str, dict]] = []

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        lock_wait_seconds=2.0,
        lock_poll_interval=0.01,
        settlement_enabled=False,
        withdrawal_settle_after_seconds=0,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database file, then drop everything."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def services(session_factory, fake_redis, test_settings) -> ServiceRegistry:
    return ServiceRegistry.build(session_factory, fake_redis, test_settings)


@pytest_asyncio.fixture
async def client(session_factory, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    from carpool.api.app import create_app
    from carpool.api.middleware import limiter

    limiter.reset()
    app = create_app(session_factory=session_factory, redis=fake_redis)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Builders ──────────────────────────────────────────────────────────


def tomorrow(hours: int = 0) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1, hours=hours)


async def make_user(
    services: ServiceRegistry, name: str = "user", **vehicle
) -> UserModel:
    make_user.counter += 1
    return await services.users.register(
        first_name=name.capitalize(),
        last_name="Tester",
        email=f"{name}{make_user.counter}@example.com",
        **vehicle,
    )


make_user.counter = 0


async def make_ride(
    services: ServiceRegistry,
    driver_id: int,
    seats: int = 3,
    distance_km: Optional[float] = 100.0,
    **details,
) -> Ride:
    details.setdefault("departure_time", tomorrow())
    return await services.rides.create_ride(
        driver_id,
        start=details.pop("start", START),
        end=details.pop("end", END),
        seats=seats,
        fare=RideFare(per_km=Decimal("8.00"), base_fare=Decimal("30.00")),
        route=Route(distance_km=distance_km, duration_min=60),
        **details,
    )


async def join_and_accept(services: ServiceRegistry, ride: Ride, *passenger_ids: int) -> Ride:
    for pid in passenger_ids:
        await services.rides.request_to_join(ride.id, pid)
        ride = await services.rides.respond_to_request(
            ride.id, ride.driver_id, pid, PassengerStatus.ACCEPTED
        )
    return ride


async def fund(services: ServiceRegistry, user_id: int, amount: str) -> None:
    await services.ledger.top_up(user_id, Decimal(amount), PaymentMethod.UPI)
