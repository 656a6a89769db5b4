"""Driver log submission with duplicate resolution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from driver_payroll.calculators.rate_resolver import RateResolver
from driver_payroll.calculators.types import Quantities, RateOverrides, RateSnapshot
from driver_payroll.config import RateDefaults
from driver_payroll.database import advisory_lock, atomic
from driver_payroll.errors import NotFoundError, ValidationError
from driver_payroll.models import LogEntry
from driver_payroll.services.fleet_service import truck_lock_key
from driver_payroll.services.log_repository import EntryFields, LogRepository
from driver_payroll.services.state_machine import (
    Actor,
    InvalidTransitionError,
    LogStateMachine,
    Operation,
)

logger = logging.getLogger(__name__)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class DuplicateAction(str, Enum):
    """Caller's choice when a submission collides with an existing entry."""

    NONE = "none"
    REPLACE = "replace"
    MERGE = "merge"


class SubmissionOutcome(str, Enum):
    """What happened to a submission."""

    CREATED = "created"
    DUPLICATE_CONFLICT = "duplicate-conflict"
    REPLACED = "replaced"
    MERGED = "merged"


@dataclass
class LogSubmission:
    """A driver's daily log as submitted."""

    log_date: date | None
    driver_id: int | None
    truck_unit: str | None
    miles: Decimal = Decimal("0")
    value_hours: Decimal = Decimal("0")
    detention_minutes: int = 0
    notes: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    total_minutes: int = 0
    overrides: RateOverrides = field(default_factory=RateOverrides)

    @property
    def quantities(self) -> Quantities:
        return Quantities(
            miles=Decimal(self.miles),
            value_hours=Decimal(self.value_hours),
            detention_minutes=int(self.detention_minutes),
        )


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a submission.

    IMPORTANT: a duplicate-conflict is not a failure and nothing was
    persisted. ``entry`` is then the existing entry the caller must choose
    to replace or merge into.
    """

    outcome: SubmissionOutcome
    entry: LogEntry

    @property
    def entry_id(self) -> int:
        return self.entry.log_entry_id

    @property
    def persisted(self) -> bool:
        """True if the store was written."""
        return self.outcome != SubmissionOutcome.DUPLICATE_CONFLICT

    def conflict_details(self) -> dict[str, Any]:
        """Existing entry id and quantities, for presenting a choice."""
        return {
            "log_entry_id": self.entry.log_entry_id,
            "log_date": self.entry.log_date.isoformat(),
            "miles": self.entry.miles,
            "value_hours": self.entry.value_hours,
            "detention_minutes": self.entry.detention_minutes,
            "notes": self.entry.notes,
        }


def merge_notes(existing: str | None, incoming: str | None) -> str | None:
    """Join notes with a newline when both are non-blank, else keep the non-blank one."""
    has_existing = bool(existing and existing.strip())
    has_incoming = bool(incoming and incoming.strip())
    if has_existing and has_incoming:
        return f"{existing}\n{incoming}"
    if has_incoming:
        return incoming
    if has_existing:
        return existing
    return None


def validate_submission(submission: LogSubmission) -> None:
    """Reject incomplete or malformed input before touching the store."""
    if submission.log_date is None:
        raise ValidationError("log_date", "is required")
    if submission.driver_id is None:
        raise ValidationError("driver_id", "is required")
    if not submission.truck_unit or not submission.truck_unit.strip():
        raise ValidationError("truck_unit", "is required")

    for name in ("miles", "value_hours"):
        try:
            amount = Decimal(getattr(submission, name))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(name, "must be a number")
        if not amount.is_finite() or amount < 0:
            raise ValidationError(name, "must be a non-negative number")

    for name in ("detention_minutes", "total_minutes"):
        value = getattr(submission, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(name, "must be a non-negative whole number")

    for name in ("mileage_rate", "per_value_rate", "detention_rate"):
        rate = getattr(submission.overrides, name)
        if rate is not None and Decimal(rate) < 0:
            raise ValidationError(name, "cannot be negative")

    for name in ("start_time", "end_time"):
        validate_clock_time(name, getattr(submission, name))


def validate_clock_time(name: str, value: str | None) -> None:
    """Reject a time of day that is not HH:MM. None is allowed."""
    if value is not None and (not isinstance(value, str) or not _TIME_PATTERN.match(value)):
        raise ValidationError(name, "must be HH:MM")


def parse_action(action: DuplicateAction | str | None) -> DuplicateAction:
    """Convert an action token, treating empty as no action."""
    try:
        return DuplicateAction(action or DuplicateAction.NONE)
    except ValueError:
        choices = ", ".join(a.value for a in DuplicateAction)
        raise ValidationError("action", f"expected one of {choices}, got {action!r}")


def submission_lock_key(driver_id: int, truck_unit: str, log_date: date) -> str:
    """Key serializing submissions for one (driver, truck, date)."""
    return f"log:{driver_id}:{truck_unit}:{log_date.isoformat()}"


class SubmissionService:
    """Applies the duplicate resolution policy to driver submissions.

    Outcomes:
    - no existing entry: created
    - existing entry, no action: duplicate-conflict (nothing written)
    - existing entry, replace: quantities, rates, times and notes overwritten
    - existing entry, merge: quantities added, notes joined, rates kept
    """

    def __init__(self, session: AsyncSession, rate_defaults: RateDefaults | None = None):
        self.session = session
        self.repository = LogRepository(session)
        self.rate_resolver = RateResolver(self.repository, rate_defaults)

    async def submit(
        self,
        submission: LogSubmission,
        actor: Actor,
        action: DuplicateAction | str = DuplicateAction.NONE,
    ) -> SubmissionResult:
        """Submit a daily log.

        Raises:
            ValidationError: Missing or malformed fields
            NotFoundError: Unknown driver
            AuthorizationError: Role may not submit
            StorageError: Transaction failed
        """
        LogStateMachine.authorize(actor, Operation.SUBMIT)
        validate_submission(submission)
        action = parse_action(action)

        unit = submission.truck_unit.strip()
        lock_key = submission_lock_key(submission.driver_id, unit, submission.log_date)

        async with atomic(self.session, lock_key=lock_key):
            driver = await self.repository.find_driver(submission.driver_id)
            if driver is None:
                raise NotFoundError("driver", [submission.driver_id])

            truck = await self.repository.find_truck_by_unit(unit)
            if truck is None:
                await advisory_lock(self.session, truck_lock_key(unit))
                truck = await self.repository.find_truck_by_unit(unit)
            if truck is None:
                truck = await self.repository.create_truck(unit)
                logger.info("Registered truck %s on first submission", unit)

            existing = await self.repository.find_entry_by_driver_truck_date(
                driver.driver_id, truck.truck_id, submission.log_date
            )

            if existing is None:
                rates = self.rate_resolver.resolve_for_driver(driver, submission.overrides)
                entry = await self.repository.create_entry(
                    driver.driver_id,
                    truck.truck_id,
                    submission.log_date,
                    self._fields(submission, rates),
                )
                outcome = SubmissionOutcome.CREATED

            elif action == DuplicateAction.NONE:
                logger.info(
                    "Duplicate submission for driver %s truck %s on %s (entry %s)",
                    driver.driver_id,
                    unit,
                    submission.log_date,
                    existing.log_entry_id,
                )
                return SubmissionResult(SubmissionOutcome.DUPLICATE_CONFLICT, existing)

            elif action == DuplicateAction.REPLACE:
                self._ensure_mutable(existing)
                rates = self.rate_resolver.resolve_for_driver(driver, submission.overrides)
                entry = await self.repository.replace_entry(
                    existing, self._fields(submission, rates)
                )
                outcome = SubmissionOutcome.REPLACED

            else:
                self._ensure_mutable(existing)
                entry = await self.repository.merge_quantities_into_entry(
                    existing,
                    submission.quantities,
                    merge_notes(existing.notes, submission.notes),
                    total_minutes=submission.total_minutes,
                )
                outcome = SubmissionOutcome.MERGED

            entry_id = entry.log_entry_id
            await self.repository.add_audit_event(
                actor=actor.identity,
                actor_role=actor.role.value,
                entity_type="log_entry",
                entity_id=entry_id,
                action=f"submission:{outcome.value}",
            )

        logger.info("Log entry %s %s", entry_id, outcome.value)
        fresh = await self.repository.get_entry(entry_id)
        return SubmissionResult(outcome, fresh)

    @staticmethod
    def _ensure_mutable(entry: LogEntry) -> None:
        status = LogStateMachine.status_of(entry)
        if not LogStateMachine.can_modify_inputs(status):
            raise InvalidTransitionError(status, status, "paid entries cannot be changed")

    @staticmethod
    def _fields(submission: LogSubmission, rates: RateSnapshot) -> EntryFields:
        return EntryFields(
            quantities=submission.quantities,
            rates=rates,
            notes=submission.notes if submission.notes and submission.notes.strip() else None,
            start_time=submission.start_time,
            end_time=submission.end_time,
            total_minutes=submission.total_minutes,
        )
