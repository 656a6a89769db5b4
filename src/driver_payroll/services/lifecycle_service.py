"""Log entry lifecycle: period assignment, approval, settlement and payment."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.calculators.pay_period import PayPeriod, current_pay_period
from driver_payroll.calculators.rate_resolver import RateResolver
from driver_payroll.calculators.types import RateOverrides
from driver_payroll.config import LifecycleConfig, PayPeriodConfig, RateDefaults
from driver_payroll.database import atomic
from driver_payroll.errors import NotFoundError, ValidationError
from driver_payroll.models import LogEntry
from driver_payroll.models.base import utcnow
from driver_payroll.services.log_repository import LogFilter, LogRepository
from driver_payroll.services.payroll_aggregator import PayrollAggregator, PayrollRow
from driver_payroll.services.state_machine import (
    Actor,
    InvalidTransitionError,
    LogStateMachine,
    LogStatus,
    Operation,
)
from driver_payroll.services.submission_service import validate_clock_time

if TYPE_CHECKING:
    from driver_payroll.services.notifications import EditNotifier

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "log_date",
        "truck_unit",
        "miles",
        "value_hours",
        "detention_minutes",
        "start_time",
        "end_time",
        "total_minutes",
        "notes",
    }
)


@dataclass(frozen=True)
class SettlementRecord:
    """Everything needed to export a closed pay period."""

    period: PayPeriod
    approver: str
    closed_at: datetime
    entries: list[LogEntry]
    totals: list[PayrollRow]

    @property
    def gross_pay(self) -> Decimal:
        return sum((row.gross_pay for row in self.totals), Decimal("0"))


@dataclass(frozen=True)
class EntryEdit:
    """Admin changes to an entry. Unset fields are left as they are.

    Rates are always re-snapshotted: a None override falls back to the
    driver default or the system rate.
    """

    changes: dict[str, Any]
    overrides: RateOverrides = field(default_factory=RateOverrides)

    def __post_init__(self) -> None:
        unknown = set(self.changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "is not an editable field")


class LifecycleService:
    """Service for walking log entries through their lifecycle.

    Operations (all admin-only, all single-transaction):
    - assign_period: stamp period boundaries on a set of entries
    - approve_entry: stamp approval on one entry, overwriting
    - close_period: approve a whole period, keeping earlier approval times
    - mark_paid: stamp paid time on a set of entries
    - edit_entry / delete_entry: admin corrections
    """

    def __init__(
        self,
        session: AsyncSession,
        lifecycle_config: LifecycleConfig | None = None,
        pay_period_config: PayPeriodConfig | None = None,
        rate_defaults: RateDefaults | None = None,
        notifier: EditNotifier | None = None,
    ):
        self.session = session
        self.repository = LogRepository(session)
        self.config = lifecycle_config or LifecycleConfig()
        self.pay_period_config = pay_period_config or PayPeriodConfig()
        self.rate_resolver = RateResolver(self.repository, rate_defaults)
        self.aggregator = PayrollAggregator(session)
        self.notifier = notifier

    # ----- Queries -----

    def current_period(self, now: datetime | None = None) -> PayPeriod:
        """Pay period active now in the configured time zone."""
        if now is None:
            now = datetime.now(ZoneInfo(self.pay_period_config.timezone))
        return current_pay_period(
            now,
            self.pay_period_config.week_start,
            self.pay_period_config.cutoff,
        )

    async def get_entry(self, log_entry_id: int, actor: Actor) -> LogEntry:
        """Load an entry or raise NotFoundError."""
        LogStateMachine.authorize(actor, Operation.VIEW)
        entry = await self.repository.get_entry(log_entry_id)
        if entry is None:
            raise NotFoundError("log_entry", [log_entry_id])
        return entry

    async def list_entries(self, log_filter: LogFilter, actor: Actor) -> list[LogEntry]:
        """List entries for the admin console."""
        LogStateMachine.authorize(actor, Operation.VIEW)
        return await self.repository.list_entries(log_filter)

    async def list_pending_approvals(self, actor: Actor) -> list[LogEntry]:
        """Unapproved, unpaid entries, oldest first."""
        LogStateMachine.authorize(actor, Operation.VIEW)
        entries = await self.repository.list_entries(LogFilter(approved=False, paid=False))
        return list(reversed(entries))

    # ----- Transitions -----

    async def assign_period(
        self,
        ids: Sequence[int],
        period: PayPeriod,
        actor: Actor,
    ) -> list[LogEntry]:
        """Stamp a pay period on entries. Re-assigning overwrites."""
        LogStateMachine.authorize(actor, Operation.ASSIGN_PERIOD)
        ids = _unique_ids(ids)

        async with atomic(self.session):
            entries = await self._load_all(ids)
            for entry in entries:
                LogStateMachine.validate_transition(
                    LogStateMachine.status_of(entry), LogStatus.PERIOD_ASSIGNED
                )
            await self.repository.assign_period(ids, period)
            await self._audit(
                actor,
                None,
                "assign_period",
                {"ids": ids, **_period_details(period)},
            )

        logger.info(
            "%s assigned %d entries to period %s..%s",
            actor.identity,
            len(ids),
            period.start,
            period.end,
        )
        return await self.repository.get_entries(ids)

    async def approve_entry(self, log_entry_id: int, actor: Actor) -> LogEntry:
        """Approve one entry. Always overwrites approval time and approver."""
        LogStateMachine.authorize(actor, Operation.APPROVE)

        async with atomic(self.session):
            (entry,) = await self._load_all([log_entry_id])
            LogStateMachine.validate_transition(
                LogStateMachine.status_of(entry), LogStatus.APPROVED
            )
            await self.repository.approve_entry(log_entry_id, actor.identity, utcnow())
            await self._audit(actor, log_entry_id, "approve")

        logger.info("%s approved entry %s", actor.identity, log_entry_id)
        return await self.repository.get_entry(log_entry_id)

    async def close_period(self, period: PayPeriod, actor: Actor) -> SettlementRecord:
        """Approve every unpaid entry in a period and return its settlement record.

        Entries approved earlier keep their approval time; the approver is
        refreshed. Paid entries are left untouched.
        """
        LogStateMachine.authorize(actor, Operation.CLOSE_PERIOD)
        closed_at = utcnow()

        async with atomic(self.session):
            count = await self.repository.close_period(period, actor.identity, closed_at)
            await self._audit(
                actor,
                None,
                "close_period",
                {"entries": count, **_period_details(period)},
            )

        logger.info(
            "%s closed period %s..%s (%d entries)",
            actor.identity,
            period.start,
            period.end,
            count,
        )
        entries = await self.repository.list_entries(LogFilter(period=period))
        totals = self.aggregator.aggregate_entries(entries)
        return SettlementRecord(
            period=period,
            approver=actor.identity,
            closed_at=closed_at,
            entries=entries,
            totals=totals,
        )

    async def mark_paid(self, ids: Sequence[int], actor: Actor) -> list[LogEntry]:
        """Mark entries paid. Approval is required only if configured."""
        LogStateMachine.authorize(actor, Operation.MARK_PAID)
        ids = _unique_ids(ids)

        async with atomic(self.session):
            entries = await self._load_all(ids)
            errors = LogStateMachine.validate_mark_paid(
                entries, self.config.mark_paid_requires_approval
            )
            if errors:
                raise InvalidTransitionError(
                    "unapproved", LogStatus.PAID.value, "; ".join(errors)
                )
            await self.repository.mark_paid(ids, utcnow())
            await self._audit(actor, None, "mark_paid", {"ids": ids})

        logger.info("%s marked %d entries paid", actor.identity, len(ids))
        return await self.repository.get_entries(ids)

    # ----- Corrections -----

    async def edit_entry(self, log_entry_id: int, edit: EntryEdit, actor: Actor) -> LogEntry:
        """Apply admin changes and re-snapshot rates."""
        LogStateMachine.authorize(actor, Operation.EDIT)
        changes = dict(edit.changes)

        async with atomic(self.session):
            (entry,) = await self._load_all([log_entry_id])
            status = LogStateMachine.status_of(entry)
            if not LogStateMachine.can_modify_inputs(status):
                raise InvalidTransitionError(status, status, "paid entries cannot be edited")

            unit = changes.pop("truck_unit", None)
            if unit is not None:
                unit = str(unit).strip()
                if not unit:
                    raise ValidationError("truck_unit", "cannot be blank")
                truck = await self.repository.find_truck_by_unit(unit)
                if truck is None:
                    truck = await self.repository.create_truck(unit)
                changes["truck_id"] = truck.truck_id

            if "log_date" in changes and changes["log_date"] is None:
                raise ValidationError("log_date", "cannot be cleared")
            for name in ("miles", "value_hours", "detention_minutes", "total_minutes"):
                if name in changes and (changes[name] is None or changes[name] < 0):
                    raise ValidationError(name, "must be non-negative")
            for name in ("start_time", "end_time"):
                if name in changes:
                    validate_clock_time(name, changes[name])

            rates = await self.rate_resolver.resolve(entry.driver_id, edit.overrides)
            changes.update(
                mileage_rate=rates.mileage_rate,
                per_value_rate=rates.per_value_rate,
                detention_rate=rates.detention_rate,
            )
            before = _audit_values(entry.to_dict())
            await self.repository.update_entry(entry, changes)
            await self._audit(
                actor,
                log_entry_id,
                "edit",
                {"before": before, "changes": _audit_values(changes)},
            )

        edited = await self.repository.get_entry(log_entry_id)
        logger.info("%s edited entry %s", actor.identity, log_entry_id)
        if self.notifier is not None:
            await self.notifier.entry_edited(edited)
        return edited

    async def delete_entry(self, log_entry_id: int, actor: Actor) -> None:
        """Delete an entry that has not been paid."""
        LogStateMachine.authorize(actor, Operation.DELETE)

        async with atomic(self.session):
            (entry,) = await self._load_all([log_entry_id])
            status = LogStateMachine.status_of(entry)
            if status == LogStatus.PAID:
                raise InvalidTransitionError(status, "deleted", "paid entries cannot be deleted")
            await self.repository.delete_entry(log_entry_id)
            await self._audit(actor, log_entry_id, "delete", _audit_values(entry.to_dict()))

        logger.info("%s deleted entry %s", actor.identity, log_entry_id)

    # ----- Helpers -----

    async def _load_all(self, ids: Sequence[int]) -> list[LogEntry]:
        """Load entries, raising NotFoundError if any id is unknown."""
        missing = await self.repository.find_missing_entry_ids(ids)
        if missing:
            raise NotFoundError("log_entry", missing)
        return await self.repository.get_entries(ids)

    async def _audit(
        self,
        actor: Actor,
        entity_id: int | None,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        await self.repository.add_audit_event(
            actor=actor.identity,
            actor_role=actor.role.value,
            entity_type="log_entry",
            entity_id=entity_id,
            action=action,
            details=details,
        )


def _unique_ids(ids: Sequence[int]) -> list[int]:
    if not ids:
        raise ValidationError("ids", "at least one id is required")
    return list(dict.fromkeys(int(i) for i in ids))


def _audit_values(values: dict[str, Any]) -> dict[str, Any]:
    """Make column values JSON-safe."""
    safe: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, (date, datetime, Decimal)):
            safe[key] = str(value)
        else:
            safe[key] = value
    return safe


def _period_details(period: PayPeriod) -> dict[str, str]:
    start, end = period.as_strings()
    return {"period_start": start, "period_end": end}
