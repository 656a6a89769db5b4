"""Integration test fixtures for the HTTP API."""

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.api.app import create_app
from driver_payroll.api.dependencies import get_app_settings, get_db_session
from driver_payroll.config import Settings

ADMIN_TOKEN = "test-admin-token"
ADMIN_HEADERS = {"X-Admin-Token": ADMIN_TOKEN, "X-Admin-Name": "dispatch"}


@pytest.fixture
def settings(database_url) -> Settings:
    """Settings for the test app. Admin console enabled, no webhook."""
    return Settings(
        database_url=database_url,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        admin_token=ADMIN_TOKEN,
        pay_period_week_start="MON",
        pay_period_cutoff="17:00",
        pay_period_timezone="UTC",
        default_mileage_rate=Decimal("0.46"),
        default_per_value_rate=Decimal("25"),
        default_detention_rate=Decimal("0"),
        mark_paid_requires_approval=False,
        mail_webhook_url=None,
    )


@pytest_asyncio.fixture
async def client(session_factory, settings) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_app_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return dict(ADMIN_HEADERS)
