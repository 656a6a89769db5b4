"""Pytest fixtures for driver payroll tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from driver_payroll.config import RateDefaults
from driver_payroll.models import Base, Driver, Truck
from driver_payroll.services.state_machine import Actor
from driver_payroll.services.submission_service import LogSubmission


# File-backed SQLite so every session in a test sees the same database
@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'driver_payroll.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    """Create test database engine."""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def rate_defaults() -> RateDefaults:
    return RateDefaults()


@pytest.fixture
def admin() -> Actor:
    return Actor.admin("dispatch")


@pytest.fixture
def driver_actor() -> Actor:
    return Actor.driver("alice")


@pytest_asyncio.fixture
async def drivers(session_factory) -> dict[str, Driver]:
    """Seed drivers.

    alice: mileage default 0.50, detention default 18.00
    bob: no defaults (system fallback rates apply)
    """
    async with session_factory() as seed:
        alice = Driver(
            name="Alice Mercer",
            email="alice@example.com",
            default_mileage_rate=Decimal("0.50"),
            default_detention_rate=Decimal("18.00"),
        )
        bob = Driver(name="bob Tran")
        seed.add_all([alice, bob])
        await seed.commit()
        return {"alice": alice, "bob": bob}


@pytest_asyncio.fixture
async def truck(session_factory) -> Truck:
    async with session_factory() as seed:
        truck = Truck(unit="T-101")
        seed.add(truck)
        await seed.commit()
        return truck


@pytest.fixture
def make_submission():
    """Factory for a valid submission on 2024-01-03, truck T-101."""

    def build(driver_id: int, **overrides) -> LogSubmission:
        values = {
            "log_date": date(2024, 1, 3),
            "driver_id": driver_id,
            "truck_unit": "T-101",
            "miles": Decimal("100"),
            "value_hours": Decimal("2"),
            "detention_minutes": 30,
        }
        values.update(overrides)
        return LogSubmission(**values)

    return build
