"""HTTP API for driver payroll."""

from driver_payroll.api.app import create_app

__all__ = ["create_app"]
