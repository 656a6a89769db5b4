"""Driver payroll services."""

from driver_payroll.services.fleet_service import DefaultRates, FleetService
from driver_payroll.services.lifecycle_service import (
    EntryEdit,
    LifecycleService,
    SettlementRecord,
)
from driver_payroll.services.log_repository import EntryFields, LogFilter, LogRepository
from driver_payroll.services.payroll_aggregator import PayrollAggregator, PayrollRow
from driver_payroll.services.state_machine import (
    Actor,
    InvalidTransitionError,
    LogStateMachine,
    LogStatus,
    Operation,
    Role,
)
from driver_payroll.services.submission_service import (
    DuplicateAction,
    LogSubmission,
    SubmissionOutcome,
    SubmissionResult,
    SubmissionService,
)

__all__ = [
    "Actor",
    "DefaultRates",
    "DuplicateAction",
    "EntryEdit",
    "EntryFields",
    "FleetService",
    "InvalidTransitionError",
    "LifecycleService",
    "LogFilter",
    "LogRepository",
    "LogStateMachine",
    "LogStatus",
    "LogSubmission",
    "Operation",
    "PayrollAggregator",
    "PayrollRow",
    "Role",
    "SettlementRecord",
    "SubmissionOutcome",
    "SubmissionResult",
    "SubmissionService",
]
