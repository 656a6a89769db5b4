"""Per-driver payroll totals."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.calculators.pay import round_money
from driver_payroll.models import LogEntry
from driver_payroll.services.log_repository import LogFilter, LogRepository


@dataclass(frozen=True)
class PayrollRow:
    """Totals for one driver."""

    driver_id: int
    driver_name: str
    entry_count: int
    total_miles: Decimal
    total_value_hours: Decimal
    total_detention_minutes: int
    gross_pay: Decimal


class PayrollAggregator:
    """Sums entries into one row per driver.

    Gross pay is the sum of each entry's own gross pay, computed from that
    entry's rate snapshot. Rates are never averaged across entries.
    """

    def __init__(self, session: AsyncSession):
        self.repository = LogRepository(session)

    async def aggregate(self, log_filter: LogFilter | None = None) -> list[PayrollRow]:
        """Aggregate payroll for entries matching the filter.

        A filter field left as None does not restrict the result.
        """
        entries = await self.repository.list_entries(log_filter or LogFilter())
        return self.aggregate_entries(entries)

    def aggregate_entries(self, entries: Iterable[LogEntry]) -> list[PayrollRow]:
        """Group already loaded entries by driver, ordered by driver name."""
        groups: dict[int, list[LogEntry]] = {}
        names: dict[int, str] = {}
        for entry in entries:
            groups.setdefault(entry.driver_id, []).append(entry)
            names[entry.driver_id] = entry.driver.name

        rows = [
            self._build_row(driver_id, names[driver_id], driver_entries)
            for driver_id, driver_entries in groups.items()
        ]
        rows.sort(key=lambda row: (row.driver_name.casefold(), row.driver_id))
        return rows

    @staticmethod
    def _build_row(driver_id: int, name: str, entries: list[LogEntry]) -> PayrollRow:
        total_miles = Decimal("0")
        total_value_hours = Decimal("0")
        total_detention = 0
        gross = Decimal("0")

        for entry in entries:
            total_miles += entry.miles
            total_value_hours += entry.value_hours
            total_detention += entry.detention_minutes
            gross += entry.gross_pay

        return PayrollRow(
            driver_id=driver_id,
            driver_name=name,
            entry_count=len(entries),
            total_miles=total_miles,
            total_value_hours=total_value_hours,
            total_detention_minutes=total_detention,
            gross_pay=round_money(gross),
        )
