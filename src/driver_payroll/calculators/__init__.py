"""Pay computation: rates, gross pay and pay periods."""

from driver_payroll.calculators.pay import gross_pay, round_money
from driver_payroll.calculators.pay_period import (
    PayPeriod,
    current_pay_period,
    pay_period_for_date,
)
from driver_payroll.calculators.rate_resolver import RateResolver
from driver_payroll.calculators.types import Quantities, RateOverrides, RateSnapshot

__all__ = [
    "PayPeriod",
    "Quantities",
    "RateOverrides",
    "RateResolver",
    "RateSnapshot",
    "current_pay_period",
    "gross_pay",
    "pay_period_for_date",
    "round_money",
]
