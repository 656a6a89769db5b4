"""Driver and truck registry maintenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.database import atomic
from driver_payroll.errors import NotFoundError, ValidationError
from driver_payroll.models import Driver, Truck
from driver_payroll.services.log_repository import LogRepository
from driver_payroll.services.state_machine import Actor, LogStateMachine, Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefaultRates:
    """New driver default rates. None clears the default."""

    mileage_rate: Decimal | None
    detention_rate: Decimal | None

    def __post_init__(self) -> None:
        for name in ("mileage_rate", "detention_rate"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(name, "cannot be negative")


class FleetService:
    """Admin operations on drivers and trucks.

    Changing a driver's defaults never touches existing log entries: their
    rate snapshots stay as captured.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = LogRepository(session)

    async def list_drivers(self) -> list[Driver]:
        return await self.repository.list_drivers()

    async def list_trucks(self) -> list[Truck]:
        return await self.repository.list_trucks()

    async def create_driver(
        self,
        name: str,
        actor: Actor,
        email: str | None = None,
        rates: DefaultRates | None = None,
    ) -> Driver:
        """Seed a driver."""
        LogStateMachine.authorize(actor, Operation.MANAGE_FLEET)
        name = (name or "").strip()
        if not name:
            raise ValidationError("name", "is required")
        rates = rates or DefaultRates(mileage_rate=None, detention_rate=None)

        async with atomic(self.session):
            driver = await self.repository.create_driver(
                name,
                email=email,
                default_mileage_rate=rates.mileage_rate,
                default_detention_rate=rates.detention_rate,
            )
            await self.repository.add_audit_event(
                actor=actor.identity,
                actor_role=actor.role.value,
                entity_type="driver",
                entity_id=driver.driver_id,
                action="create",
                details={"name": name},
            )

        logger.info("%s created driver %s (%s)", actor.identity, driver.driver_id, name)
        return driver

    async def update_default_rates(
        self,
        driver_id: int,
        rates: DefaultRates,
        actor: Actor,
    ) -> Driver:
        """Replace a driver's default mileage and detention rates."""
        LogStateMachine.authorize(actor, Operation.MANAGE_FLEET)

        async with atomic(self.session):
            driver = await self.repository.find_driver(driver_id)
            if driver is None:
                raise NotFoundError("driver", [driver_id])
            before = {
                "mileage_rate": _as_text(driver.default_mileage_rate),
                "detention_rate": _as_text(driver.default_detention_rate),
            }
            driver.default_mileage_rate = rates.mileage_rate
            driver.default_detention_rate = rates.detention_rate
            await self.session.flush()
            await self.repository.add_audit_event(
                actor=actor.identity,
                actor_role=actor.role.value,
                entity_type="driver",
                entity_id=driver_id,
                action="update_default_rates",
                details={
                    "before": before,
                    "after": {
                        "mileage_rate": _as_text(rates.mileage_rate),
                        "detention_rate": _as_text(rates.detention_rate),
                    },
                },
            )

        logger.info("%s updated default rates for driver %s", actor.identity, driver_id)
        return driver

    async def register_truck(self, unit: str, actor: Actor) -> Truck:
        """Return the truck with this unit label, creating it if needed."""
        LogStateMachine.authorize(actor, Operation.MANAGE_FLEET)
        unit = (unit or "").strip()
        if not unit:
            raise ValidationError("unit", "is required")

        async with atomic(self.session, lock_key=truck_lock_key(unit)):
            truck = await self.repository.find_truck_by_unit(unit)
            if truck is None:
                truck = await self.repository.create_truck(unit)
                logger.info("%s registered truck %s", actor.identity, unit)
        return truck


def truck_lock_key(unit: str) -> str:
    """Key serializing creation of one truck unit."""
    return f"truck:{unit}"


def _as_text(value: Decimal | None) -> str | None:
    return None if value is None else str(value)
