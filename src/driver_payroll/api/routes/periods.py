"""Admin pay period and payroll endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query

from driver_payroll.api.dependencies import AdminActor, Lifecycle, Payroll
from driver_payroll.api.schemas import (
    AssignPeriodRequest,
    ErrorResponse,
    LogEntryResponse,
    PayrollRowResponse,
    PeriodRequest,
    PeriodResponse,
    SettlementResponse,
)
from driver_payroll.calculators.pay_period import PayPeriod
from driver_payroll.services.log_repository import LogFilter
from driver_payroll.services.state_machine import LogStateMachine, Operation

router = APIRouter(prefix="/admin", tags=["admin-periods"])


@router.get("/periods/current", response_model=PeriodResponse)
async def current_period(lifecycle: Lifecycle, actor: AdminActor) -> PeriodResponse:
    """Pay period active right now."""
    return PeriodResponse.from_period(lifecycle.current_period())


@router.post(
    "/periods/assign",
    response_model=list[LogEntryResponse],
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def assign_period(
    lifecycle: Lifecycle,
    actor: AdminActor,
    payload: AssignPeriodRequest,
) -> list[LogEntryResponse]:
    """Stamp a pay period on entries."""
    entries = await lifecycle.assign_period(payload.ids, payload.to_period(), actor)
    return [LogEntryResponse.from_entry(e) for e in entries]


@router.post(
    "/periods/close",
    response_model=SettlementResponse,
    responses={422: {"model": ErrorResponse}},
)
async def close_period(
    lifecycle: Lifecycle,
    actor: AdminActor,
    payload: PeriodRequest,
) -> SettlementResponse:
    """Approve all entries in a period and return the settlement record."""
    record = await lifecycle.close_period(payload.to_period(), actor)
    return SettlementResponse.from_record(record)


@router.get("/payroll", response_model=list[PayrollRowResponse])
async def payroll(
    aggregator: Payroll,
    actor: AdminActor,
    date_from: Annotated[date | None, Query(alias="from")] = None,
    date_to: Annotated[date | None, Query(alias="to")] = None,
    driver_id: int | None = None,
    truck_id: int | None = None,
    period_start: date | None = None,
) -> list[PayrollRowResponse]:
    """Per-driver totals for the filtered entries."""
    LogStateMachine.authorize(actor, Operation.VIEW)
    period = PayPeriod.starting(period_start) if period_start else None
    rows = await aggregator.aggregate(
        LogFilter(
            date_from=date_from,
            date_to=date_to,
            driver_id=driver_id,
            truck_id=truck_id,
            period=period,
        )
    )
    return [PayrollRowResponse.from_row(row) for row in rows]
