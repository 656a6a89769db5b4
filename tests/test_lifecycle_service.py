"""Tests for the log entry lifecycle service."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.calculators.types import RateOverrides
from driver_payroll.config import LifecycleConfig, PayPeriodConfig
from driver_payroll.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from driver_payroll.services.fleet_service import DefaultRates, FleetService
from driver_payroll.services.lifecycle_service import EntryEdit, LifecycleService
from driver_payroll.services.log_repository import LogFilter, LogRepository
from driver_payroll.services.notifications import EditNotifier
from driver_payroll.services.state_machine import Actor, InvalidTransitionError, LogStatus
from driver_payroll.services.submission_service import SubmissionService


pytestmark = pytest.mark.asyncio

PERIOD = PayPeriod.starting(date(2024, 1, 1))


@pytest_asyncio.fixture
async def entries(session, drivers, driver_actor, make_submission):
    """Three open entries: two for alice, one for bob."""
    service = SubmissionService(session)
    created = [
        await service.submit(make_submission(drivers["alice"].driver_id), driver_actor),
        await service.submit(
            make_submission(drivers["alice"].driver_id, log_date=date(2024, 1, 4)),
            driver_actor,
        ),
        await service.submit(make_submission(drivers["bob"].driver_id), driver_actor),
    ]
    return [result.entry_id for result in created]


class TestCurrentPeriod:
    """Test period lookup with configuration."""

    async def test_uses_configured_cutoff(self, session):
        service = LifecycleService(
            session, pay_period_config=PayPeriodConfig(week_start="MON", cutoff="17:00")
        )
        now = datetime(2024, 1, 8, 16, 59, tzinfo=timezone.utc)

        assert service.current_period(now) == PayPeriod.starting(date(2024, 1, 1))

    async def test_defaults_to_now(self, session):
        period = LifecycleService(session).current_period()
        assert period.end.toordinal() - period.start.toordinal() == 6


class TestAssignPeriod:
    """Test stamping pay periods."""

    async def test_assign(self, session, admin, entries):
        service = LifecycleService(session)

        assigned = await service.assign_period(entries[:2], PERIOD, admin)

        assert [e.log_entry_id for e in assigned] == entries[:2]
        for entry in assigned:
            assert entry.period_start == date(2024, 1, 1)
            assert entry.period_end == date(2024, 1, 7)
            assert entry.status == LogStatus.PERIOD_ASSIGNED

    async def test_reassign_overwrites(self, session, admin, entries):
        service = LifecycleService(session)
        await service.assign_period(entries[:1], PERIOD, admin)

        (entry,) = await service.assign_period(entries[:1], PERIOD.next(), admin)

        assert entry.period_start == date(2024, 1, 8)

    async def test_unknown_id_fails_whole_batch(self, session, admin, entries):
        service = LifecycleService(session)

        with pytest.raises(NotFoundError) as exc_info:
            await service.assign_period([entries[0], 999], PERIOD, admin)

        assert exc_info.value.ids == [999]
        entry = await service.get_entry(entries[0], admin)
        assert entry.period_start is None

    async def test_empty_ids(self, session, admin):
        with pytest.raises(ValidationError):
            await LifecycleService(session).assign_period([], PERIOD, admin)

    async def test_driver_forbidden(self, session, driver_actor, entries):
        with pytest.raises(AuthorizationError) as exc_info:
            await LifecycleService(session).assign_period(entries, PERIOD, driver_actor)

        assert exc_info.value.required_role == "admin"


class TestApproval:
    """Test single approval and period close."""

    async def test_approve_overwrites(self, session, admin, entries):
        service = LifecycleService(session)
        first = await service.approve_entry(entries[0], admin)

        again = await service.approve_entry(entries[0], Actor.admin("payroll"))

        assert again.approved_by == "payroll"
        assert again.approved_at >= first.approved_at
        assert again.status == LogStatus.APPROVED

    async def test_close_period_keeps_first_approval_time(self, session, admin, entries):
        """Closing twice keeps each entry's first approval time; the approver refreshes."""
        service = LifecycleService(session)
        await service.assign_period(entries, PERIOD, admin)

        first = await service.close_period(PERIOD, admin)
        first_times = {e.log_entry_id: e.approved_at for e in first.entries}

        second = await service.close_period(PERIOD, Actor.admin("auditor"))

        assert {e.log_entry_id: e.approved_at for e in second.entries} == first_times
        assert {e.approved_by for e in second.entries} == {"auditor"}

    async def test_close_period_leaves_paid_entries_untouched(self, session, admin, entries):
        """Closing a period never stamps approval on an entry that is already paid."""
        service = LifecycleService(session)
        await service.assign_period(entries, PERIOD, admin)
        await service.mark_paid([entries[0]], admin)

        record = await service.close_period(PERIOD, Actor.admin("auditor"))

        by_id = {e.log_entry_id: e for e in record.entries}
        assert by_id[entries[0]].status == LogStatus.PAID
        assert by_id[entries[0]].approved_at is None
        assert by_id[entries[0]].approved_by is None
        assert by_id[entries[1]].approved_by == "auditor"

    async def test_close_period_settlement(self, session, admin, entries, drivers):
        service = LifecycleService(session)
        await service.assign_period(entries, PERIOD, admin)

        record = await service.close_period(PERIOD, admin)

        assert record.period == PERIOD
        assert record.approver == "dispatch"
        assert len(record.entries) == 3
        assert [row.driver_name for row in record.totals] == ["Alice Mercer", "bob Tran"]
        # alice: 2 x (50 + 50 + 9); bob: 46 + 50 + 0
        assert record.totals[0].gross_pay == Decimal("218.00")
        assert record.totals[1].gross_pay == Decimal("96.00")
        assert record.gross_pay == Decimal("314.00")

    async def test_close_period_ignores_other_periods(self, session, admin, entries):
        service = LifecycleService(session)
        await service.assign_period(entries[:1], PERIOD, admin)
        await service.assign_period(entries[1:], PERIOD.next(), admin)

        record = await service.close_period(PERIOD, admin)

        assert [e.log_entry_id for e in record.entries] == entries[:1]
        other = await service.get_entry(entries[1], admin)
        assert other.approved_at is None

    async def test_pending_approvals_oldest_first(self, session, admin, entries):
        service = LifecycleService(session)
        await service.approve_entry(entries[1], admin)

        pending = await service.list_pending_approvals(admin)

        assert [e.log_entry_id for e in pending] == [entries[0], entries[2]]


class TestMarkPaid:
    """Test the paid transition."""

    async def test_mark_paid_keeps_first_time(self, session, admin, entries):
        service = LifecycleService(session)
        (first,) = await service.mark_paid([entries[0]], admin)

        (second,) = await service.mark_paid([entries[0]], admin)

        assert first.status == LogStatus.PAID
        assert second.paid_at == first.paid_at

    async def test_approval_not_required_by_default(self, session, admin, entries):
        paid = await LifecycleService(session).mark_paid(entries, admin)
        assert all(e.paid_at is not None for e in paid)

    async def test_approval_required_when_configured(self, session, admin, entries):
        service = LifecycleService(
            session, lifecycle_config=LifecycleConfig(mark_paid_requires_approval=True)
        )
        await service.approve_entry(entries[0], admin)

        with pytest.raises(InvalidTransitionError):
            await service.mark_paid(entries[:2], admin)

        paid_entries = await service.list_entries(LogFilter(paid=True), admin)
        assert paid_entries == []

        (paid,) = await service.mark_paid(entries[:1], admin)
        assert paid.paid_at is not None

    async def test_paid_entries_are_frozen(self, session, admin, entries):
        service = LifecycleService(session)
        await service.mark_paid([entries[0]], admin)

        with pytest.raises(InvalidTransitionError):
            await service.assign_period([entries[0]], PERIOD, admin)
        with pytest.raises(InvalidTransitionError):
            await service.approve_entry(entries[0], admin)
        with pytest.raises(InvalidTransitionError):
            await service.edit_entry(entries[0], EntryEdit({"miles": Decimal("1")}), admin)
        with pytest.raises(InvalidTransitionError):
            await service.delete_entry(entries[0], admin)


class TestEditAndDelete:
    """Test admin corrections."""

    async def test_edit_resnapshots_rates(self, session, admin, entries, drivers):
        service = LifecycleService(session)
        await FleetService(session).update_default_rates(
            drivers["alice"].driver_id,
            DefaultRates(mileage_rate=Decimal("0.80"), detention_rate=Decimal("20")),
            admin,
        )

        edited = await service.edit_entry(
            entries[0],
            EntryEdit(
                {"miles": Decimal("120"), "notes": "fixed odometer"},
                overrides=RateOverrides(per_value_rate=Decimal("30")),
            ),
            admin,
        )

        assert edited.miles == Decimal("120")
        assert edited.notes == "fixed odometer"
        assert edited.mileage_rate == Decimal("0.80")
        assert edited.detention_rate == Decimal("20")
        assert edited.per_value_rate == Decimal("30")
        # Untouched quantities survive
        assert edited.value_hours == Decimal("2")

    async def test_edit_moves_truck(self, session, admin, entries):
        edited = await LifecycleService(session).edit_entry(
            entries[0], EntryEdit({"truck_unit": "T-555"}), admin
        )
        assert edited.truck.unit == "T-555"

    async def test_edit_audited(self, session, admin, entries):
        await LifecycleService(session).edit_entry(
            entries[0], EntryEdit({"miles": Decimal("5")}), admin
        )

        events = await LogRepository(session).list_audit_events("log_entry", entries[0])
        edit = events[-1]
        assert edit.action == "edit"
        assert edit.actor == "dispatch"
        assert Decimal(edit.details["before"]["miles"]) == Decimal("100")
        assert Decimal(edit.details["changes"]["miles"]) == Decimal("5")

    async def test_edit_rejects_unknown_field(self):
        with pytest.raises(ValidationError):
            EntryEdit({"paid_at": None})

    async def test_edit_rejects_negative(self, session, admin, entries):
        with pytest.raises(ValidationError):
            await LifecycleService(session).edit_entry(
                entries[0], EntryEdit({"detention_minutes": -1}), admin
            )

    async def test_edit_rejects_malformed_time(self, session, admin, entries):
        service = LifecycleService(session)

        with pytest.raises(ValidationError) as exc_info:
            await service.edit_entry(
                entries[0], EntryEdit({"start_time": "not a time"}), admin
            )

        assert exc_info.value.field == "start_time"
        entry = await service.get_entry(entries[0], admin)
        assert entry.start_time is None

    async def test_edit_sets_and_clears_times(self, session, admin, entries):
        service = LifecycleService(session)

        edited = await service.edit_entry(
            entries[0], EntryEdit({"start_time": "06:15", "end_time": "18:00"}), admin
        )
        assert (edited.start_time, edited.end_time) == ("06:15", "18:00")

        cleared = await service.edit_entry(entries[0], EntryEdit({"end_time": None}), admin)
        assert cleared.start_time == "06:15"
        assert cleared.end_time is None

    async def test_edit_notifies_webhook(self, session, admin, entries):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200)

        notifier = EditNotifier(
            "http://mail.test/hook", transport=httpx.MockTransport(handler)
        )
        service = LifecycleService(session, notifier=notifier)

        await service.edit_entry(entries[0], EntryEdit({"notes": "late start"}), admin)

        assert len(received) == 1
        assert received[0]["type"] == "driver_log_edited"
        assert received[0]["log"]["id"] == entries[0]
        assert received[0]["log"]["notes"] == "late start"

    async def test_webhook_failure_does_not_fail_edit(self, session, admin, entries):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        notifier = EditNotifier(
            "http://mail.test/hook", transport=httpx.MockTransport(handler)
        )
        service = LifecycleService(session, notifier=notifier)

        edited = await service.edit_entry(entries[0], EntryEdit({"notes": "x"}), admin)

        assert edited.notes == "x"

    async def test_delete(self, session, admin, entries):
        service = LifecycleService(session)

        await service.delete_entry(entries[0], admin)

        with pytest.raises(NotFoundError):
            await service.get_entry(entries[0], admin)

    async def test_delete_unknown(self, session, admin):
        with pytest.raises(NotFoundError):
            await LifecycleService(session).delete_entry(404, admin)


class TestTransactionFailure:
    """Test rollback and error mapping when the store rejects a write."""

    async def test_bulk_write_rolled_back(self, session, admin, entries, monkeypatch):
        """A database error after the bulk update leaves every entry unchanged."""
        service = LifecycleService(session)

        async def reject(**kwargs):
            raise IntegrityError("INSERT INTO audit_event", {}, Exception("constraint failed"))

        monkeypatch.setattr(service.repository, "add_audit_event", reject)

        with pytest.raises(StorageError) as exc_info:
            await service.assign_period(entries, PERIOD, admin)

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "STORAGE_ERROR"
        monkeypatch.undo()
        for entry_id in entries:
            entry = await service.get_entry(entry_id, admin)
            assert entry.period_start is None
            assert entry.period_end is None

    async def test_session_usable_after_failure(self, session, admin, entries, monkeypatch):
        service = LifecycleService(session)

        async def reject(**kwargs):
            raise IntegrityError("INSERT INTO audit_event", {}, Exception("constraint failed"))

        monkeypatch.setattr(service.repository, "add_audit_event", reject)
        with pytest.raises(StorageError):
            await service.mark_paid(entries, admin)
        monkeypatch.undo()

        paid = await service.mark_paid(entries[:1], admin)

        assert paid[0].paid_at is not None
        assert await service.list_entries(LogFilter(paid=True), admin) == paid
