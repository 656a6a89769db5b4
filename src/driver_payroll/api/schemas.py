"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.calculators.types import RateOverrides
from driver_payroll.models import Driver, LogEntry, Truck
from driver_payroll.services.lifecycle_service import SettlementRecord
from driver_payroll.services.payroll_aggregator import PayrollRow
from driver_payroll.services.submission_service import DuplicateAction, LogSubmission


# ============================================================================
# Shared
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    extra: dict[str, Any] | None = None


class RateOverridesMixin(BaseModel):
    """Optional per-entry rate overrides."""

    mileage_rate: Decimal | None = Field(default=None, ge=0)
    per_value_rate: Decimal | None = Field(default=None, ge=0)
    detention_rate: Decimal | None = Field(default=None, ge=0)

    def to_overrides(self) -> RateOverrides:
        return RateOverrides(
            mileage_rate=self.mileage_rate,
            per_value_rate=self.per_value_rate,
            detention_rate=self.detention_rate,
        )


# ============================================================================
# Fleet schemas
# ============================================================================


class DriverCreate(BaseModel):
    """Schema for seeding a driver."""

    name: str
    email: str | None = None
    default_mileage_rate: Decimal | None = Field(default=None, ge=0)
    default_detention_rate: Decimal | None = Field(default=None, ge=0)


class DriverRatesUpdate(BaseModel):
    """Schema for replacing a driver's default rates."""

    default_mileage_rate: Decimal | None = Field(default=None, ge=0)
    default_detention_rate: Decimal | None = Field(default=None, ge=0)


class DriverResponse(BaseModel):
    """Schema for driver response."""

    model_config = ConfigDict(from_attributes=True)

    driver_id: int
    name: str
    email: str | None = None
    default_mileage_rate: Decimal | None = None
    default_detention_rate: Decimal | None = None

    @classmethod
    def from_driver(cls, driver: Driver) -> "DriverResponse":
        return cls.model_validate(driver)


class TruckCreate(BaseModel):
    """Schema for registering a truck."""

    unit: str


class TruckResponse(BaseModel):
    """Schema for truck response."""

    model_config = ConfigDict(from_attributes=True)

    truck_id: int
    unit: str

    @classmethod
    def from_truck(cls, truck: Truck) -> "TruckResponse":
        return cls.model_validate(truck)


# ============================================================================
# Log entry schemas
# ============================================================================


class LogSubmissionRequest(RateOverridesMixin):
    """Schema for a driver's daily log submission.

    Required fields are checked by the submission service so a missing
    value produces the same validation error from every entry point.
    """

    log_date: date | None = None
    driver_id: int | None = None
    truck_unit: str | None = None
    miles: Decimal = Field(default=Decimal("0"), ge=0)
    value_hours: Decimal = Field(default=Decimal("0"), ge=0)
    detention_minutes: int = Field(default=0, ge=0)
    start_time: str | None = None
    end_time: str | None = None
    total_minutes: int = Field(default=0, ge=0)
    notes: str | None = None
    action: DuplicateAction = DuplicateAction.NONE

    def to_submission(self) -> LogSubmission:
        return LogSubmission(
            log_date=self.log_date,
            driver_id=self.driver_id,
            truck_unit=self.truck_unit,
            miles=self.miles,
            value_hours=self.value_hours,
            detention_minutes=self.detention_minutes,
            notes=self.notes,
            start_time=self.start_time,
            end_time=self.end_time,
            total_minutes=self.total_minutes,
            overrides=self.to_overrides(),
        )


class LogEntryUpdate(RateOverridesMixin):
    """Schema for an admin edit. Rates are re-snapshotted on every edit."""

    log_date: date | None = None
    truck_unit: str | None = None
    miles: Decimal | None = Field(default=None, ge=0)
    value_hours: Decimal | None = Field(default=None, ge=0)
    detention_minutes: int | None = Field(default=None, ge=0)
    start_time: str | None = None
    end_time: str | None = None
    total_minutes: int | None = Field(default=None, ge=0)
    notes: str | None = None

    def changes(self) -> dict[str, Any]:
        """Explicitly provided non-rate fields."""
        rate_fields = set(RateOverridesMixin.model_fields)
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if key not in rate_fields
        }


class LogEntryResponse(BaseModel):
    """Schema for log entry response."""

    id: int
    log_date: date
    driver_id: int
    driver_name: str
    truck_id: int
    truck_unit: str
    miles: Decimal
    value_hours: Decimal
    detention_minutes: int
    start_time: str | None = None
    end_time: str | None = None
    total_minutes: int
    mileage_rate: Decimal
    per_value_rate: Decimal
    detention_rate: Decimal
    gross_pay: Decimal
    notes: str | None = None
    status: str
    period_start: date | None = None
    period_end: date | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    paid_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "LogEntryResponse":
        return cls(
            id=entry.log_entry_id,
            log_date=entry.log_date,
            driver_id=entry.driver_id,
            driver_name=entry.driver.name,
            truck_id=entry.truck_id,
            truck_unit=entry.truck.unit,
            miles=entry.miles,
            value_hours=entry.value_hours,
            detention_minutes=entry.detention_minutes,
            start_time=entry.start_time,
            end_time=entry.end_time,
            total_minutes=entry.total_minutes,
            mileage_rate=entry.mileage_rate,
            per_value_rate=entry.per_value_rate,
            detention_rate=entry.detention_rate,
            gross_pay=entry.gross_pay,
            notes=entry.notes,
            status=str(getattr(entry.status, "value", entry.status)),
            period_start=entry.period_start,
            period_end=entry.period_end,
            approved_at=entry.approved_at,
            approved_by=entry.approved_by,
            paid_at=entry.paid_at,
        )


class SubmissionResponse(BaseModel):
    """Schema for a submission outcome."""

    outcome: str
    entry: LogEntryResponse


class DuplicateConflictResponse(BaseModel):
    """Schema returned when a submission collides with an existing entry."""

    outcome: str
    detail: str
    existing: dict[str, Any]


# ============================================================================
# Period & payroll schemas
# ============================================================================


class PeriodRequest(BaseModel):
    """Schema for a pay period."""

    start: date
    end: date

    def to_period(self) -> PayPeriod:
        return PayPeriod(start=self.start, end=self.end)


class AssignPeriodRequest(PeriodRequest):
    """Schema for assigning entries to a period."""

    ids: list[int] = Field(min_length=1)


class MarkPaidRequest(BaseModel):
    """Schema for marking entries paid."""

    ids: list[int] = Field(min_length=1)


class PeriodResponse(BaseModel):
    """Schema for pay period boundaries."""

    start: date
    end: date

    @classmethod
    def from_period(cls, period: PayPeriod) -> "PeriodResponse":
        return cls(start=period.start, end=period.end)


class PayrollRowResponse(BaseModel):
    """Schema for one driver's payroll totals."""

    model_config = ConfigDict(from_attributes=True)

    driver_id: int
    driver_name: str
    entry_count: int
    total_miles: Decimal
    total_value_hours: Decimal
    total_detention_minutes: int
    gross_pay: Decimal

    @classmethod
    def from_row(cls, row: PayrollRow) -> "PayrollRowResponse":
        return cls.model_validate(row)


class SettlementResponse(BaseModel):
    """Schema for a closed period's settlement record."""

    period: PeriodResponse
    approver: str
    closed_at: datetime
    gross_pay: Decimal
    totals: list[PayrollRowResponse]
    entries: list[LogEntryResponse]

    @classmethod
    def from_record(cls, record: SettlementRecord) -> "SettlementResponse":
        return cls(
            period=PeriodResponse.from_period(record.period),
            approver=record.approver,
            closed_at=record.closed_at,
            gross_pay=record.gross_pay,
            totals=[PayrollRowResponse.from_row(row) for row in record.totals],
            entries=[LogEntryResponse.from_entry(e) for e in record.entries],
        )
