"""Driver payroll: daily logs, pay periods and payroll."""

__version__ = "0.1.0"
