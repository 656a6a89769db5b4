"""Typed errors raised by the payroll core.

The HTTP layer maps each kind to a response; nothing in the core retries
or swallows these.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class DriverPayrollError(Exception):
    """Base class for all driver payroll errors."""

    code = "PAYROLL_ERROR"


class ValidationError(DriverPayrollError):
    """Raised when input is rejected before any store access."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(DriverPayrollError):
    """Raised when an operation targets a driver, truck or entry that does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, ids: Iterable[Any]):
        self.entity = entity
        self.ids = list(ids)
        joined = ", ".join(str(i) for i in self.ids)
        super().__init__(f"{entity} not found: {joined}")


class AuthorizationError(DriverPayrollError):
    """Raised when the caller's role does not permit an operation."""

    code = "FORBIDDEN"

    def __init__(self, operation: str, required_role: str, actual_role: str):
        self.operation = operation
        self.required_role = required_role
        self.actual_role = actual_role
        super().__init__(
            f"'{operation}' requires role '{required_role}' (caller has '{actual_role}')"
        )


class StorageError(DriverPayrollError):
    """Raised when the underlying transaction fails. Safe to retry."""

    code = "STORAGE_ERROR"
    retryable = True
