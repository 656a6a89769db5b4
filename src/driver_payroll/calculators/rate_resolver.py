"""Rate resolution for new log entries."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from driver_payroll.calculators.types import RateOverrides, RateSnapshot
from driver_payroll.config import RateDefaults
from driver_payroll.errors import NotFoundError

if TYPE_CHECKING:
    from driver_payroll.models import Driver
    from driver_payroll.services.log_repository import LogRepository


class RateResolver:
    """Resolves the rates to snapshot onto a log entry.

    Rate selection priority, per rate:
    1. Explicit override on the submission
    2. Driver default (mileage and detention only)
    3. System fallback from RateDefaults

    The per-value-hour rate has no driver default.
    """

    def __init__(self, repository: LogRepository, defaults: RateDefaults | None = None):
        self.repository = repository
        self.defaults = defaults or RateDefaults()

    async def resolve(
        self,
        driver_id: int,
        overrides: RateOverrides | None = None,
    ) -> RateSnapshot:
        """Resolve effective rates for a driver.

        Raises:
            NotFoundError: If the driver does not exist
        """
        driver = await self.repository.find_driver(driver_id)
        if driver is None:
            raise NotFoundError("driver", [driver_id])
        return self.resolve_for_driver(driver, overrides)

    def resolve_for_driver(
        self,
        driver: Driver,
        overrides: RateOverrides | None = None,
    ) -> RateSnapshot:
        """Resolve effective rates for an already loaded driver."""
        overrides = overrides or RateOverrides()

        return RateSnapshot(
            mileage_rate=_first_set(
                overrides.mileage_rate,
                driver.default_mileage_rate,
                self.defaults.mileage_rate,
            ),
            per_value_rate=_first_set(
                overrides.per_value_rate,
                self.defaults.per_value_rate,
            ),
            detention_rate=_first_set(
                overrides.detention_rate,
                driver.default_detention_rate,
                self.defaults.detention_rate,
            ),
        )


def _first_set(*candidates: Decimal | None) -> Decimal:
    for candidate in candidates:
        if candidate is not None:
            return Decimal(candidate)
    raise ValueError("no rate candidate set")
