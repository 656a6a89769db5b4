"""Tests for driver log submission and duplicate resolution."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from driver_payroll.calculators.types import RateOverrides
from driver_payroll.errors import NotFoundError, ValidationError
from driver_payroll.models import LogEntry, Truck
from driver_payroll.services.fleet_service import DefaultRates, FleetService
from driver_payroll.services.lifecycle_service import EntryEdit, LifecycleService
from driver_payroll.services.log_repository import LogRepository
from driver_payroll.services.state_machine import Actor, InvalidTransitionError
from driver_payroll.services.submission_service import (
    DuplicateAction,
    SubmissionOutcome,
    SubmissionService,
    merge_notes,
)


pytestmark = pytest.mark.asyncio


async def count_entries(session) -> int:
    result = await session.execute(select(func.count()).select_from(LogEntry))
    return result.scalar_one()


class TestSubmit:
    """Test creating entries."""

    async def test_created_with_rate_snapshot(
        self, session, drivers, driver_actor, make_submission
    ):
        """A first submission is stored with the driver's resolved rates."""
        service = SubmissionService(session)

        result = await service.submit(make_submission(drivers["alice"].driver_id), driver_actor)

        assert result.outcome == SubmissionOutcome.CREATED
        assert result.persisted is True
        entry = result.entry
        assert entry.miles == Decimal("100")
        assert entry.mileage_rate == Decimal("0.50")
        assert entry.per_value_rate == Decimal("25")
        assert entry.detention_rate == Decimal("18.00")
        assert entry.status == "open"
        # 100 x 0.50 + 2 x 25 + 0.5 x 18
        assert entry.gross_pay == Decimal("109")

    async def test_unknown_truck_is_registered(
        self, session, drivers, driver_actor, make_submission
    ):
        service = SubmissionService(session)

        result = await service.submit(
            make_submission(drivers["bob"].driver_id, truck_unit="  T-900 "), driver_actor
        )

        assert result.entry.truck.unit == "T-900"
        truck = await LogRepository(session).find_truck_by_unit("T-900")
        assert truck is not None

    async def test_existing_truck_reused(
        self, session, drivers, truck, driver_actor, make_submission
    ):
        service = SubmissionService(session)

        result = await service.submit(make_submission(drivers["bob"].driver_id), driver_actor)

        assert result.entry.truck_id == truck.truck_id
        trucks = await session.execute(select(func.count()).select_from(Truck))
        assert trucks.scalar_one() == 1

    async def test_overrides_snapshotted(self, session, drivers, driver_actor, make_submission):
        service = SubmissionService(session)

        result = await service.submit(
            make_submission(
                drivers["alice"].driver_id,
                overrides=RateOverrides(per_value_rate=Decimal("40")),
            ),
            driver_actor,
        )

        assert result.entry.per_value_rate == Decimal("40")
        assert result.entry.mileage_rate == Decimal("0.50")

    async def test_unknown_driver(self, session, drivers, driver_actor, make_submission):
        service = SubmissionService(session)

        with pytest.raises(NotFoundError):
            await service.submit(make_submission(4242), driver_actor)

        assert await count_entries(session) == 0

    async def test_audit_event_written(self, session, drivers, driver_actor, make_submission):
        service = SubmissionService(session)

        result = await service.submit(make_submission(drivers["alice"].driver_id), driver_actor)

        events = await LogRepository(session).list_audit_events("log_entry", result.entry_id)
        assert [e.action for e in events] == ["submission:created"]
        assert events[0].actor == "alice"
        assert events[0].actor_role == "driver"


class TestValidation:
    """Test input validation before any store access."""

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"log_date": None}, "log_date"),
            ({"driver_id": None}, "driver_id"),
            ({"truck_unit": "   "}, "truck_unit"),
            ({"miles": Decimal("-1")}, "miles"),
            ({"value_hours": Decimal("-0.5")}, "value_hours"),
            ({"detention_minutes": -5}, "detention_minutes"),
            ({"start_time": "25:00"}, "start_time"),
            ({"end_time": "7pm"}, "end_time"),
            ({"overrides": RateOverrides(mileage_rate=Decimal("-0.1"))}, "mileage_rate"),
        ],
    )
    async def test_rejected(
        self, session, drivers, driver_actor, make_submission, overrides, field
    ):
        service = SubmissionService(session)

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(
                make_submission(**{"driver_id": drivers["alice"].driver_id, **overrides}),
                driver_actor,
            )

        assert exc_info.value.field == field
        assert await count_entries(session) == 0

    async def test_times_accepted(self, session, drivers, driver_actor, make_submission):
        service = SubmissionService(session)

        result = await service.submit(
            make_submission(
                drivers["alice"].driver_id,
                start_time="06:30",
                end_time="17:45",
                total_minutes=675,
            ),
            driver_actor,
        )

        assert result.entry.start_time == "06:30"
        assert result.entry.total_minutes == 675


class TestDuplicateResolution:
    """Test the duplicate resolution policy."""

    async def test_duplicate_without_action_conflicts(
        self, session, drivers, driver_actor, make_submission
    ):
        """A second submission with no action returns the existing entry and writes nothing."""
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        first = await service.submit(make_submission(driver_id), driver_actor)

        second = await service.submit(
            make_submission(driver_id, miles=Decimal("50")), driver_actor
        )

        assert second.outcome == SubmissionOutcome.DUPLICATE_CONFLICT
        assert second.persisted is False
        details = second.conflict_details()
        assert details["log_entry_id"] == first.entry_id
        assert details["miles"] == Decimal("100")
        assert await count_entries(session) == 1

    async def test_different_truck_is_not_duplicate(
        self, session, drivers, driver_actor, make_submission
    ):
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        await service.submit(make_submission(driver_id), driver_actor)

        result = await service.submit(make_submission(driver_id, truck_unit="T-202"), driver_actor)

        assert result.outcome == SubmissionOutcome.CREATED
        assert await count_entries(session) == 2

    async def test_merge_adds_quantities(
        self, session, drivers, driver_actor, make_submission
    ):
        """100/2/30 merged with 50/1/10 gives 150/3/40."""
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        first = await service.submit(make_submission(driver_id, notes="morning"), driver_actor)

        merged = await service.submit(
            make_submission(
                driver_id,
                miles=Decimal("50"),
                value_hours=Decimal("1"),
                detention_minutes=10,
                notes="evening",
            ),
            driver_actor,
            DuplicateAction.MERGE,
        )

        assert merged.outcome == SubmissionOutcome.MERGED
        assert merged.entry_id == first.entry_id
        assert merged.entry.miles == Decimal("150")
        assert merged.entry.value_hours == Decimal("3")
        assert merged.entry.detention_minutes == 40
        assert merged.entry.notes == "morning\nevening"
        assert await count_entries(session) == 1

    async def test_merge_keeps_rate_snapshot(
        self, session, drivers, admin, driver_actor, make_submission
    ):
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        await service.submit(make_submission(driver_id), driver_actor)
        await FleetService(session).update_default_rates(
            driver_id, DefaultRates(mileage_rate=Decimal("0.90"), detention_rate=None), admin
        )

        merged = await service.submit(
            make_submission(driver_id, overrides=RateOverrides(mileage_rate=Decimal("2"))),
            driver_actor,
            "merge",
        )

        assert merged.entry.mileage_rate == Decimal("0.50")

    async def test_replace_overwrites(
        self, session, drivers, admin, driver_actor, make_submission
    ):
        """Replace overwrites quantities and re-resolves rates."""
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        first = await service.submit(make_submission(driver_id, notes="old"), driver_actor)
        await FleetService(session).update_default_rates(
            driver_id, DefaultRates(mileage_rate=Decimal("0.70"), detention_rate=None), admin
        )

        replaced = await service.submit(
            make_submission(driver_id, miles=Decimal("80"), detention_minutes=0),
            driver_actor,
            DuplicateAction.REPLACE,
        )

        assert replaced.outcome == SubmissionOutcome.REPLACED
        assert replaced.entry_id == first.entry_id
        assert replaced.entry.miles == Decimal("80")
        assert replaced.entry.detention_minutes == 0
        assert replaced.entry.mileage_rate == Decimal("0.70")
        assert replaced.entry.detention_rate == Decimal("0")
        assert replaced.entry.notes is None
        assert await count_entries(session) == 1

    async def test_most_recent_duplicate_is_used(
        self, session, drivers, driver_actor, make_submission
    ):
        """If several entries already share a key, the highest id is the match."""
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        await service.submit(make_submission(driver_id), driver_actor)
        newest = await service.submit(make_submission(driver_id, truck_unit="T-202"), driver_actor)
        # Move the second entry onto the first one's truck
        await LifecycleService(session).edit_entry(
            newest.entry_id,
            EntryEdit(changes={"truck_unit": "T-101"}),
            Actor.admin(),
        )

        result = await service.submit(make_submission(driver_id), driver_actor)

        assert result.outcome == SubmissionOutcome.DUPLICATE_CONFLICT
        assert result.entry_id == newest.entry_id

    async def test_paid_entry_cannot_be_replaced(
        self, session, drivers, admin, driver_actor, make_submission
    ):
        service = SubmissionService(session)
        driver_id = drivers["alice"].driver_id
        first = await service.submit(make_submission(driver_id), driver_actor)
        # A failed submit rolls back and expires instances held by the session
        entry_id = first.entry_id
        await LifecycleService(session).mark_paid([entry_id], admin)

        with pytest.raises(InvalidTransitionError):
            await service.submit(make_submission(driver_id), driver_actor, "replace")
        with pytest.raises(InvalidTransitionError):
            await service.submit(make_submission(driver_id), driver_actor, "merge")

        entry = await LogRepository(session).get_entry(entry_id)
        assert entry.miles == Decimal("100")

    async def test_concurrent_submissions_create_one_entry(
        self, session_factory, drivers, make_submission
    ):
        """Two simultaneous submissions for the same key never create two entries."""
        driver_id = drivers["alice"].driver_id

        async def submit_once(name: str):
            async with session_factory() as s:
                return await SubmissionService(s).submit(
                    make_submission(driver_id), Actor.driver(name)
                )

        results = await asyncio.gather(submit_once("a"), submit_once("b"))

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["created", "duplicate-conflict"]
        async with session_factory() as s:
            assert await count_entries(s) == 1

    async def test_concurrent_new_truck_registered_once(
        self, session_factory, drivers, make_submission
    ):
        """Two drivers reporting the same new unit at once share one truck row."""

        async def submit_for(driver_id: int):
            async with session_factory() as s:
                return await SubmissionService(s).submit(
                    make_submission(driver_id, truck_unit="T-NEW"), Actor.driver()
                )

        results = await asyncio.gather(
            submit_for(drivers["alice"].driver_id),
            submit_for(drivers["bob"].driver_id),
        )

        assert [r.outcome for r in results] == [SubmissionOutcome.CREATED] * 2
        assert results[0].entry.truck_id == results[1].entry.truck_id
        async with session_factory() as s:
            trucks = await s.execute(
                select(func.count()).select_from(Truck).where(Truck.unit == "T-NEW")
            )
            assert trucks.scalar_one() == 1


class TestAuthorizationAndHelpers:
    """Test role checks and note merging."""

    async def test_admin_may_submit(self, session, drivers, admin, make_submission):
        service = SubmissionService(session)
        result = await service.submit(make_submission(drivers["bob"].driver_id), admin)
        assert result.outcome == SubmissionOutcome.CREATED

    async def test_merge_notes(self):
        assert merge_notes("a", "b") == "a\nb"
        assert merge_notes("a", "  ") == "a"
        assert merge_notes(None, "b") == "b"
        assert merge_notes("", None) is None

    async def test_invalid_action(self, session, drivers, driver_actor, make_submission):
        """An unknown action token is a validation error and writes nothing."""
        service = SubmissionService(session)
        with pytest.raises(ValidationError) as exc_info:
            await service.submit(
                make_submission(drivers["bob"].driver_id, log_date=date(2024, 2, 1)),
                driver_actor,
                "overwrite",
            )

        assert exc_info.value.field == "action"
        assert await count_entries(session) == 0
