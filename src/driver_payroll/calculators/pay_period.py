"""Weekly pay period boundaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from driver_payroll.errors import ValidationError

WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")
PERIOD_DAYS = 7


@dataclass(frozen=True, order=True)
class PayPeriod:
    """Inclusive 7-day pay period."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end - self.start != timedelta(days=PERIOD_DAYS - 1):
            raise ValidationError(
                "period",
                f"pay period must span {PERIOD_DAYS} days inclusive "
                f"(got {self.start.isoformat()}..{self.end.isoformat()})",
            )

    @classmethod
    def starting(cls, start: date) -> PayPeriod:
        """Build the period beginning on ``start``."""
        return cls(start=start, end=start + timedelta(days=PERIOD_DAYS - 1))

    def contains(self, day: date) -> bool:
        """Check if a calendar date falls inside the period."""
        return self.start <= day <= self.end

    def previous(self) -> PayPeriod:
        return PayPeriod.starting(self.start - timedelta(days=PERIOD_DAYS))

    def next(self) -> PayPeriod:
        return PayPeriod.starting(self.start + timedelta(days=PERIOD_DAYS))

    def as_strings(self) -> tuple[str, str]:
        """Boundaries as YYYY-MM-DD strings."""
        return self.start.isoformat(), self.end.isoformat()


def parse_weekday(code: str) -> int:
    """Convert a weekday code (MON..SUN) to a Python weekday number."""
    normalized = (code or "").strip().upper()[:3]
    if normalized not in WEEKDAY_CODES:
        raise ValidationError(
            "week_start", f"expected one of {', '.join(WEEKDAY_CODES)}, got {code!r}"
        )
    return WEEKDAY_CODES.index(normalized)


def parse_cutoff(value: str | time) -> time:
    """Parse a HH:MM cutoff time of day."""
    if isinstance(value, time):
        return value
    try:
        hours, minutes = (int(part) for part in value.strip().split(":"))
        return time(hour=hours, minute=minutes)
    except (AttributeError, TypeError, ValueError):
        raise ValidationError("cutoff", f"expected HH:MM, got {value!r}")


def pay_period_for_date(day: date, week_start: str) -> PayPeriod:
    """Period a calendar date falls in, ignoring the cutoff."""
    weekday = parse_weekday(week_start)
    offset = (day.weekday() - weekday) % PERIOD_DAYS
    return PayPeriod.starting(day - timedelta(days=offset))


def current_pay_period(now: datetime, week_start: str, cutoff: str | time) -> PayPeriod:
    """Return the pay period active at ``now``.

    The most recent ``week_start`` day on or before today is the candidate
    start. Until the cutoff time passes on that day the previous period is
    still the active one.
    """
    cutoff_time = parse_cutoff(cutoff)
    candidate = pay_period_for_date(now.date(), week_start)
    cutoff_instant = datetime.combine(candidate.start, cutoff_time, tzinfo=now.tzinfo)
    if now < cutoff_instant:
        return candidate.previous()
    return candidate
