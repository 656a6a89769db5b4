"""Type definitions for pay computation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Quantities:
    """Billable quantities recorded on a log entry."""

    miles: Decimal = Decimal("0")
    value_hours: Decimal = Decimal("0")
    detention_minutes: int = 0

    def __add__(self, other: Quantities) -> Quantities:
        return Quantities(
            miles=self.miles + other.miles,
            value_hours=self.value_hours + other.value_hours,
            detention_minutes=self.detention_minutes + other.detention_minutes,
        )


@dataclass(frozen=True)
class RateSnapshot:
    """Effective rates captured on a log entry at creation time."""

    mileage_rate: Decimal
    per_value_rate: Decimal
    detention_rate: Decimal  # per hour


@dataclass(frozen=True)
class RateOverrides:
    """Explicit per-entry rates. None means "not overridden"."""

    mileage_rate: Decimal | None = None
    per_value_rate: Decimal | None = None
    detention_rate: Decimal | None = None
