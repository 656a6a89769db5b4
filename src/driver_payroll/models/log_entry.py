"""Driver daily log entry model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from driver_payroll.calculators.pay import gross_pay
from driver_payroll.calculators.types import Quantities, RateSnapshot
from driver_payroll.models.base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from driver_payroll.models.fleet import Driver, Truck


class LogEntry(Base, TimestampMixin):
    """One driver's activity for one truck on one day.

    Rates are snapshotted at creation so historical pay never moves when
    driver defaults change.
    """

    __tablename__ = "log_entry"

    log_entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("driver.driver_id", ondelete="RESTRICT"),
        nullable=False,
    )
    truck_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("truck.truck_id", ondelete="RESTRICT"),
        nullable=False,
    )
    log_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Quantities
    miles: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    value_hours: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), nullable=False, default=Decimal("0")
    )
    detention_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Rate snapshot
    mileage_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    per_value_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    detention_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lifecycle
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("miles >= 0", name="log_entry_miles_check"),
        CheckConstraint("value_hours >= 0", name="log_entry_value_hours_check"),
        CheckConstraint("detention_minutes >= 0", name="log_entry_detention_check"),
        CheckConstraint(
            "(period_start IS NULL) = (period_end IS NULL)",
            name="log_entry_period_pair_check",
        ),
        Index("ix_log_entry_driver_truck_date", "driver_id", "truck_id", "log_date"),
        Index("ix_log_entry_log_date", "log_date"),
        Index("ix_log_entry_period", "period_start", "period_end"),
    )

    # Relationships
    driver: Mapped[Driver] = relationship(
        back_populates="log_entries", lazy="joined", innerjoin=True
    )
    truck: Mapped[Truck] = relationship(
        back_populates="log_entries", lazy="joined", innerjoin=True
    )

    @property
    def quantities(self) -> Quantities:
        """Quantities recorded on this entry."""
        return Quantities(
            miles=self.miles,
            value_hours=self.value_hours,
            detention_minutes=self.detention_minutes,
        )

    @property
    def rates(self) -> RateSnapshot:
        """Rate snapshot captured on this entry."""
        return RateSnapshot(
            mileage_rate=self.mileage_rate,
            per_value_rate=self.per_value_rate,
            detention_rate=self.detention_rate,
        )

    @property
    def gross_pay(self) -> Decimal:
        """Gross pay from this entry's own rate snapshot."""
        return gross_pay(self.quantities, self.rates)

    @property
    def status(self) -> str:
        """Current lifecycle status."""
        # Import here to avoid circular imports
        from driver_payroll.services.state_machine import LogStateMachine

        return LogStateMachine.status_of(self)
