"""Driver and truck models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from driver_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from driver_payroll.models.log_entry import LogEntry


class Driver(Base, TimestampMixin):
    """Driver with optional default pay rates."""

    __tablename__ = "driver"

    driver_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    default_mileage_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4), nullable=True
    )
    default_detention_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "default_mileage_rate IS NULL OR default_mileage_rate >= 0",
            name="driver_mileage_rate_check",
        ),
        CheckConstraint(
            "default_detention_rate IS NULL OR default_detention_rate >= 0",
            name="driver_detention_rate_check",
        ),
    )

    # Relationships
    log_entries: Mapped[list[LogEntry]] = relationship(back_populates="driver")


class Truck(Base, TimestampMixin):
    """Truck identified by its unit label. Immutable once created."""

    __tablename__ = "truck"

    truck_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    # Relationships
    log_entries: Mapped[list[LogEntry]] = relationship(back_populates="truck")
