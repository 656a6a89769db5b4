"""Log entry lifecycle state machine with role gating."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from driver_payroll.errors import AuthorizationError, DriverPayrollError

if TYPE_CHECKING:
    from driver_payroll.models import LogEntry


class LogStatus(str, Enum):
    """Log entry status values."""

    OPEN = "open"
    PERIOD_ASSIGNED = "period-assigned"
    APPROVED = "approved"
    PAID = "paid"


class Role(str, Enum):
    """Caller roles."""

    DRIVER = "driver"
    ADMIN = "admin"


class Operation(str, Enum):
    """Operations gated by role."""

    SUBMIT = "submit"
    EDIT = "edit"
    DELETE = "delete"
    ASSIGN_PERIOD = "assign_period"
    APPROVE = "approve"
    CLOSE_PERIOD = "close_period"
    MARK_PAID = "mark_paid"
    MANAGE_FLEET = "manage_fleet"
    VIEW = "view"


@dataclass(frozen=True)
class Actor:
    """Who is calling, and with which role."""

    role: Role
    identity: str

    @classmethod
    def admin(cls, identity: str = "admin") -> Actor:
        return cls(role=Role.ADMIN, identity=identity)

    @classmethod
    def driver(cls, identity: str = "driver") -> Actor:
        return cls(role=Role.DRIVER, identity=identity)


class InvalidTransitionError(DriverPayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LogStateMachine:
    """State machine for log entry status.

    Canonical flow:
    - open → period-assigned
    - period-assigned → approved (direct approve or close period)
    - approved → paid

    Approval and period assignment are independent stamps, so an entry can
    also be approved while open. Re-assigning and re-approving are allowed.
    Paid is terminal.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        LogStatus.OPEN: [LogStatus.PERIOD_ASSIGNED, LogStatus.APPROVED, LogStatus.PAID],
        LogStatus.PERIOD_ASSIGNED: [
            LogStatus.PERIOD_ASSIGNED,
            LogStatus.APPROVED,
            LogStatus.PAID,
        ],
        LogStatus.APPROVED: [LogStatus.PERIOD_ASSIGNED, LogStatus.APPROVED, LogStatus.PAID],
        LogStatus.PAID: [LogStatus.PAID],  # Terminal state
    }

    # Roles allowed to perform each operation
    PERMISSIONS: dict[str, set[str]] = {
        Operation.SUBMIT: {Role.DRIVER, Role.ADMIN},
        Operation.EDIT: {Role.ADMIN},
        Operation.DELETE: {Role.ADMIN},
        Operation.ASSIGN_PERIOD: {Role.ADMIN},
        Operation.APPROVE: {Role.ADMIN},
        Operation.CLOSE_PERIOD: {Role.ADMIN},
        Operation.MARK_PAID: {Role.ADMIN},
        Operation.MANAGE_FLEET: {Role.ADMIN},
        Operation.VIEW: {Role.ADMIN},
    }

    # Statuses where quantities and rates may still be edited
    INPUTS_MUTABLE = {
        LogStatus.OPEN,
        LogStatus.PERIOD_ASSIGNED,
        LogStatus.APPROVED,
    }

    @classmethod
    def status_of(cls, entry: LogEntry) -> LogStatus:
        """Derive the status from an entry's lifecycle stamps."""
        if entry.paid_at is not None:
            return LogStatus.PAID
        if entry.approved_at is not None:
            return LogStatus.APPROVED
        if entry.period_start is not None:
            return LogStatus.PERIOD_ASSIGNED
        return LogStatus.OPEN

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_inputs(cls, status: str) -> bool:
        """Check if quantities and rates can still be edited."""
        return status in cls.INPUTS_MUTABLE

    @classmethod
    def authorize(cls, actor: Actor, operation: Operation) -> None:
        """Raise AuthorizationError unless the actor's role allows the operation."""
        allowed = cls.PERMISSIONS.get(operation, set())
        if actor.role not in allowed:
            required = Role.ADMIN if Role.ADMIN in allowed else next(iter(allowed), Role.ADMIN)
            raise AuthorizationError(
                operation=Operation(operation).value,
                required_role=Role(required).value,
                actual_role=Role(actor.role).value,
            )

    @classmethod
    def validate_mark_paid(
        cls,
        entries: list[LogEntry],
        require_approval: bool,
    ) -> list[str]:
        """Validate entries for the paid transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        if not require_approval:
            return errors

        unapproved = [e.log_entry_id for e in entries if e.approved_at is None]
        if unapproved:
            errors.append(
                f"{len(unapproved)} entr{'y' if len(unapproved) == 1 else 'ies'} "
                f"not approved: {', '.join(str(i) for i in unapproved)}"
            )
        return errors
