"""Storage access for drivers, trucks and log entries."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.calculators.types import Quantities, RateSnapshot
from driver_payroll.models import AuditEvent, Driver, LogEntry, Truck
from driver_payroll.models.base import utcnow


@dataclass(frozen=True)
class LogFilter:
    """Optional restrictions for listing entries. None means unrestricted."""

    date_from: date | None = None
    date_to: date | None = None
    driver_id: int | None = None
    truck_id: int | None = None
    period: PayPeriod | None = None
    approved: bool | None = None
    paid: bool | None = None


@dataclass(frozen=True)
class EntryFields:
    """Field values written when creating or replacing an entry."""

    quantities: Quantities
    rates: RateSnapshot
    notes: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    total_minutes: int = 0


class LogRepository:
    """Repository over an AsyncSession.

    Methods never commit; callers wrap writes in ``database.atomic``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ----- Drivers & trucks -----

    async def find_driver(self, driver_id: int) -> Driver | None:
        """Load a driver by id."""
        return await self.session.get(Driver, driver_id)

    async def list_drivers(self) -> list[Driver]:
        """All drivers ordered by name, case-insensitive."""
        result = await self.session.execute(
            select(Driver).order_by(func.lower(Driver.name), Driver.driver_id)
        )
        return list(result.scalars().all())

    async def create_driver(
        self,
        name: str,
        email: str | None = None,
        default_mileage_rate: Decimal | None = None,
        default_detention_rate: Decimal | None = None,
    ) -> Driver:
        """Insert a driver."""
        driver = Driver(
            name=name,
            email=email,
            default_mileage_rate=default_mileage_rate,
            default_detention_rate=default_detention_rate,
        )
        self.session.add(driver)
        await self.session.flush()
        return driver

    async def find_truck(self, truck_id: int) -> Truck | None:
        """Load a truck by id."""
        return await self.session.get(Truck, truck_id)

    async def find_truck_by_unit(self, unit: str) -> Truck | None:
        """Load a truck by its unit label."""
        result = await self.session.execute(select(Truck).where(Truck.unit == unit))
        return result.scalar_one_or_none()

    async def list_trucks(self) -> list[Truck]:
        """All trucks ordered by unit label."""
        result = await self.session.execute(select(Truck).order_by(Truck.unit))
        return list(result.scalars().all())

    async def create_truck(self, unit: str) -> Truck:
        """Insert a truck."""
        truck = Truck(unit=unit)
        self.session.add(truck)
        await self.session.flush()
        return truck

    # ----- Entries -----

    async def find_entry_by_driver_truck_date(
        self,
        driver_id: int,
        truck_id: int,
        log_date: date,
    ) -> LogEntry | None:
        """Most recent entry for a (driver, truck, date), if any."""
        result = await self.session.execute(
            select(LogEntry)
            .where(
                LogEntry.driver_id == driver_id,
                LogEntry.truck_id == truck_id,
                LogEntry.log_date == log_date,
            )
            .order_by(LogEntry.log_entry_id.desc())
            .limit(1)
            .with_for_update(of=LogEntry)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_entry(self, log_entry_id: int) -> LogEntry | None:
        """Load a single entry with fresh column values."""
        result = await self.session.execute(
            select(LogEntry)
            .where(LogEntry.log_entry_id == log_entry_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_entries(self, ids: Iterable[int]) -> list[LogEntry]:
        """Load entries by id, ordered by id."""
        id_list = list(ids)
        if not id_list:
            return []
        result = await self.session.execute(
            select(LogEntry)
            .where(LogEntry.log_entry_id.in_(id_list))
            .order_by(LogEntry.log_entry_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_missing_entry_ids(self, ids: Iterable[int]) -> list[int]:
        """Return the ids that do not match an existing entry."""
        id_set = set(ids)
        if not id_set:
            return []
        result = await self.session.execute(
            select(LogEntry.log_entry_id).where(LogEntry.log_entry_id.in_(id_set))
        )
        found = set(result.scalars().all())
        return sorted(id_set - found)

    async def create_entry(
        self,
        driver_id: int,
        truck_id: int,
        log_date: date,
        fields: EntryFields,
    ) -> LogEntry:
        """Insert an entry with its rate snapshot."""
        entry = LogEntry(driver_id=driver_id, truck_id=truck_id, log_date=log_date)
        _apply_fields(entry, fields)
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def replace_entry(self, entry: LogEntry, fields: EntryFields) -> LogEntry:
        """Overwrite quantities, rates, times and notes."""
        _apply_fields(entry, fields)
        entry.updated_at = utcnow()
        await self.session.flush()
        return entry

    async def merge_quantities_into_entry(
        self,
        entry: LogEntry,
        deltas: Quantities,
        notes: str | None,
        total_minutes: int = 0,
    ) -> LogEntry:
        """Add quantities to an entry and set its merged notes."""
        merged = entry.quantities + deltas
        entry.miles = merged.miles
        entry.value_hours = merged.value_hours
        entry.detention_minutes = merged.detention_minutes
        entry.total_minutes = (entry.total_minutes or 0) + total_minutes
        entry.notes = notes
        entry.updated_at = utcnow()
        await self.session.flush()
        return entry

    async def update_entry(self, entry: LogEntry, changes: dict[str, Any]) -> LogEntry:
        """Apply column changes to an entry."""
        for key, value in changes.items():
            setattr(entry, key, value)
        entry.updated_at = utcnow()
        await self.session.flush()
        return entry

    async def delete_entry(self, log_entry_id: int) -> int:
        """Delete an entry, returning the number of rows removed."""
        result = await self.session.execute(
            delete(LogEntry).where(LogEntry.log_entry_id == log_entry_id)
        )
        return result.rowcount or 0

    async def list_entries(self, log_filter: LogFilter | None = None) -> list[LogEntry]:
        """List entries matching a filter.

        Newest first by date then id; chronological when filtered by period.
        """
        log_filter = log_filter or LogFilter()
        query = select(LogEntry)

        if log_filter.date_from is not None:
            query = query.where(LogEntry.log_date >= log_filter.date_from)
        if log_filter.date_to is not None:
            query = query.where(LogEntry.log_date <= log_filter.date_to)
        if log_filter.driver_id is not None:
            query = query.where(LogEntry.driver_id == log_filter.driver_id)
        if log_filter.truck_id is not None:
            query = query.where(LogEntry.truck_id == log_filter.truck_id)
        if log_filter.period is not None:
            query = query.where(
                LogEntry.period_start == log_filter.period.start,
                LogEntry.period_end == log_filter.period.end,
            )
        if log_filter.approved is not None:
            query = query.where(
                LogEntry.approved_at.is_not(None)
                if log_filter.approved
                else LogEntry.approved_at.is_(None)
            )
        if log_filter.paid is not None:
            query = query.where(
                LogEntry.paid_at.is_not(None) if log_filter.paid else LogEntry.paid_at.is_(None)
            )

        if log_filter.period is not None:
            query = query.order_by(LogEntry.log_date.asc(), LogEntry.log_entry_id.asc())
        else:
            query = query.order_by(LogEntry.log_date.desc(), LogEntry.log_entry_id.desc())

        result = await self.session.execute(
            query.execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ----- Bulk lifecycle writes -----

    async def assign_period(self, ids: Sequence[int], period: PayPeriod) -> int:
        """Stamp period boundaries on entries."""
        result = await self.session.execute(
            update(LogEntry)
            .where(LogEntry.log_entry_id.in_(list(ids)))
            .values(period_start=period.start, period_end=period.end)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def approve_entry(self, log_entry_id: int, approver: str, approved_at: datetime) -> int:
        """Stamp approval, overwriting any previous approval."""
        result = await self.session.execute(
            update(LogEntry)
            .where(LogEntry.log_entry_id == log_entry_id)
            .values(approved_at=approved_at, approved_by=approver)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def close_period(self, period: PayPeriod, approver: str, approved_at: datetime) -> int:
        """Approve every unpaid entry in a period, keeping existing approval times."""
        result = await self.session.execute(
            update(LogEntry)
            .where(
                LogEntry.period_start == period.start,
                LogEntry.period_end == period.end,
                LogEntry.paid_at.is_(None),
            )
            .values(
                approved_at=func.coalesce(LogEntry.approved_at, approved_at),
                approved_by=approver,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def mark_paid(self, ids: Sequence[int], paid_at: datetime) -> int:
        """Stamp paid time on entries not yet paid."""
        result = await self.session.execute(
            update(LogEntry)
            .where(LogEntry.log_entry_id.in_(list(ids)))
            .values(paid_at=func.coalesce(LogEntry.paid_at, paid_at))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ----- Audit -----

    async def add_audit_event(
        self,
        actor: str,
        actor_role: str,
        entity_type: str,
        entity_id: int | None,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record an audit event in the current transaction."""
        event = AuditEvent(
            actor=actor,
            actor_role=actor_role,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=details,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_audit_events(self, entity_type: str, entity_id: int) -> list[AuditEvent]:
        """Audit events for an entity, oldest first."""
        result = await self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.audit_event_id)
        )
        return list(result.scalars().all())


def _apply_fields(entry: LogEntry, fields: EntryFields) -> None:
    entry.miles = fields.quantities.miles
    entry.value_hours = fields.quantities.value_hours
    entry.detention_minutes = fields.quantities.detention_minutes
    entry.mileage_rate = fields.rates.mileage_rate
    entry.per_value_rate = fields.rates.per_value_rate
    entry.detention_rate = fields.rates.detention_rate
    entry.notes = fields.notes
    entry.start_time = fields.start_time
    entry.end_time = fields.end_time
    entry.total_minutes = fields.total_minutes
