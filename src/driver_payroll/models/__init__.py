"""ORM models for driver payroll."""

from driver_payroll.models.audit import AuditEvent
from driver_payroll.models.base import Base, TimestampMixin
from driver_payroll.models.fleet import Driver, Truck
from driver_payroll.models.log_entry import LogEntry

__all__ = [
    "AuditEvent",
    "Base",
    "Driver",
    "LogEntry",
    "TimestampMixin",
    "Truck",
]
