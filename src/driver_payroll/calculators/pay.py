"""Gross pay formula for a single log entry."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from driver_payroll.calculators.types import Quantities, RateSnapshot

MINUTES_PER_HOUR = Decimal("60")
CENTS = Decimal("0.01")


def gross_pay(quantities: Quantities, rates: RateSnapshot) -> Decimal:
    """Compute unrounded gross pay for one entry.

    miles x mileage_rate + value_hours x per_value_rate
    + (detention_minutes / 60) x detention_rate
    """
    detention_hours = Decimal(quantities.detention_minutes) / MINUTES_PER_HOUR
    return (
        Decimal(quantities.miles) * Decimal(rates.mileage_rate)
        + Decimal(quantities.value_hours) * Decimal(rates.per_value_rate)
        + detention_hours * Decimal(rates.detention_rate)
    )


def round_money(amount: Decimal) -> Decimal:
    """Round a currency amount to cents."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
