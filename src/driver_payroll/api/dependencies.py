"""FastAPI dependencies for dependency injection."""

import hmac
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.config import Settings, get_settings
from driver_payroll.database import init_db
from driver_payroll.errors import AuthorizationError
from driver_payroll.services.fleet_service import FleetService
from driver_payroll.services.lifecycle_service import LifecycleService
from driver_payroll.services.notifications import EditNotifier
from driver_payroll.services.payroll_aggregator import PayrollAggregator
from driver_payroll.services.state_machine import Actor
from driver_payroll.services.submission_service import SubmissionService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings() -> Settings:
    """Settings dependency, overridable in tests."""
    return get_settings()


AppSettings = Annotated[Settings, Depends(get_app_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_admin_actor(
    settings: AppSettings,
    x_admin_token: Annotated[str | None, Header()] = None,
    x_admin_name: Annotated[str | None, Header()] = None,
) -> Actor:
    """Resolve the admin actor from the shared-secret header."""
    expected = settings.admin_token
    if not expected or not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode(), expected.encode()
    ):
        raise AuthorizationError("admin console", "admin", "anonymous")
    return Actor.admin((x_admin_name or "").strip() or "admin")


async def get_driver_actor(
    x_driver_name: Annotated[str | None, Header()] = None,
) -> Actor:
    """Public submitters act with the driver role."""
    return Actor.driver((x_driver_name or "").strip() or "driver")


def get_submission_service(db: DbSession, settings: AppSettings) -> SubmissionService:
    return SubmissionService(db, settings.rate_defaults())


def get_lifecycle_service(db: DbSession, settings: AppSettings) -> LifecycleService:
    notifier = EditNotifier(settings.mail_webhook_url) if settings.mail_webhook_url else None
    return LifecycleService(
        db,
        lifecycle_config=settings.lifecycle_config(),
        pay_period_config=settings.pay_period_config(),
        rate_defaults=settings.rate_defaults(),
        notifier=notifier,
    )


def get_fleet_service(db: DbSession) -> FleetService:
    return FleetService(db)


def get_payroll_aggregator(db: DbSession) -> PayrollAggregator:
    return PayrollAggregator(db)


# Type aliases for cleaner dependency injection
AdminActor = Annotated[Actor, Depends(get_admin_actor)]
DriverActor = Annotated[Actor, Depends(get_driver_actor)]
Submissions = Annotated[SubmissionService, Depends(get_submission_service)]
Lifecycle = Annotated[LifecycleService, Depends(get_lifecycle_service)]
Fleet = Annotated[FleetService, Depends(get_fleet_service)]
Payroll = Annotated[PayrollAggregator, Depends(get_payroll_aggregator)]
