"""Admin log entry endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from driver_payroll.api.dependencies import AdminActor, Lifecycle
from driver_payroll.api.schemas import (
    ErrorResponse,
    LogEntryResponse,
    LogEntryUpdate,
    MarkPaidRequest,
)
from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.services.lifecycle_service import EntryEdit
from driver_payroll.services.log_repository import LogFilter

router = APIRouter(prefix="/admin", tags=["admin-logs"])


@router.get("/logs", response_model=list[LogEntryResponse])
async def list_logs(
    lifecycle: Lifecycle,
    actor: AdminActor,
    date_from: Annotated[date | None, Query(alias="from")] = None,
    date_to: Annotated[date | None, Query(alias="to")] = None,
    driver_id: int | None = None,
    truck_id: int | None = None,
    period_start: date | None = None,
) -> list[LogEntryResponse]:
    """List entries, newest first (chronological when filtered by period)."""
    period = PayPeriod.starting(period_start) if period_start else None
    entries = await lifecycle.list_entries(
        LogFilter(
            date_from=date_from,
            date_to=date_to,
            driver_id=driver_id,
            truck_id=truck_id,
            period=period,
        ),
        actor,
    )
    return [LogEntryResponse.from_entry(e) for e in entries]


@router.get(
    "/logs/{log_entry_id}",
    response_model=LogEntryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_log(
    lifecycle: Lifecycle,
    actor: AdminActor,
    log_entry_id: Annotated[int, Path()],
) -> LogEntryResponse:
    """Get a single entry."""
    entry = await lifecycle.get_entry(log_entry_id, actor)
    return LogEntryResponse.from_entry(entry)


@router.put(
    "/logs/{log_entry_id}",
    response_model=LogEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def edit_log(
    lifecycle: Lifecycle,
    actor: AdminActor,
    log_entry_id: Annotated[int, Path()],
    payload: LogEntryUpdate,
) -> LogEntryResponse:
    """Edit an entry. Rates are re-snapshotted from overrides and defaults."""
    edit = EntryEdit(changes=payload.changes(), overrides=payload.to_overrides())
    entry = await lifecycle.edit_entry(log_entry_id, edit, actor)
    return LogEntryResponse.from_entry(entry)


@router.delete(
    "/logs/{log_entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_log(
    lifecycle: Lifecycle,
    actor: AdminActor,
    log_entry_id: Annotated[int, Path()],
) -> None:
    """Delete an unpaid entry."""
    await lifecycle.delete_entry(log_entry_id, actor)


@router.post(
    "/logs/{log_entry_id}/approve",
    response_model=LogEntryResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_log(
    lifecycle: Lifecycle,
    actor: AdminActor,
    log_entry_id: Annotated[int, Path()],
) -> LogEntryResponse:
    """Approve a single entry, overwriting any earlier approval."""
    entry = await lifecycle.approve_entry(log_entry_id, actor)
    return LogEntryResponse.from_entry(entry)


@router.get("/approvals/pending", response_model=list[LogEntryResponse])
async def pending_approvals(
    lifecycle: Lifecycle,
    actor: AdminActor,
) -> list[LogEntryResponse]:
    """Entries waiting for approval, oldest first."""
    entries = await lifecycle.list_pending_approvals(actor)
    return [LogEntryResponse.from_entry(e) for e in entries]


@router.post(
    "/mark-paid",
    response_model=list[LogEntryResponse],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_paid(
    lifecycle: Lifecycle,
    actor: AdminActor,
    payload: MarkPaidRequest,
) -> list[LogEntryResponse]:
    """Mark entries paid."""
    entries = await lifecycle.mark_paid(payload.ids, actor)
    return [LogEntryResponse.from_entry(e) for e in entries]
