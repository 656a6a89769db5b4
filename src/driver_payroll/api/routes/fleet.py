"""Admin driver and truck endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from driver_payroll.api.dependencies import AdminActor, Fleet
from driver_payroll.api.schemas import (
    DriverCreate,
    DriverRatesUpdate,
    DriverResponse,
    ErrorResponse,
    TruckCreate,
    TruckResponse,
)
from driver_payroll.services.fleet_service import DefaultRates

router = APIRouter(prefix="/admin", tags=["admin-fleet"])


@router.get("/drivers", response_model=list[DriverResponse])
async def list_drivers(fleet: Fleet, actor: AdminActor) -> list[DriverResponse]:
    """All drivers by name."""
    return [DriverResponse.from_driver(d) for d in await fleet.list_drivers()]


@router.post(
    "/drivers",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_driver(
    fleet: Fleet,
    actor: AdminActor,
    payload: DriverCreate,
) -> DriverResponse:
    """Seed a driver."""
    driver = await fleet.create_driver(
        payload.name,
        actor,
        email=payload.email,
        rates=DefaultRates(
            mileage_rate=payload.default_mileage_rate,
            detention_rate=payload.default_detention_rate,
        ),
    )
    return DriverResponse.from_driver(driver)


@router.put(
    "/drivers/{driver_id}/rates",
    response_model=DriverResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_driver_rates(
    fleet: Fleet,
    actor: AdminActor,
    driver_id: Annotated[int, Path()],
    payload: DriverRatesUpdate,
) -> DriverResponse:
    """Replace a driver's default rates. Existing entries keep their snapshots."""
    driver = await fleet.update_default_rates(
        driver_id,
        DefaultRates(
            mileage_rate=payload.default_mileage_rate,
            detention_rate=payload.default_detention_rate,
        ),
        actor,
    )
    return DriverResponse.from_driver(driver)


@router.get("/trucks", response_model=list[TruckResponse])
async def list_trucks(fleet: Fleet, actor: AdminActor) -> list[TruckResponse]:
    """All trucks by unit."""
    return [TruckResponse.from_truck(t) for t in await fleet.list_trucks()]


@router.post(
    "/trucks",
    response_model=TruckResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def register_truck(
    fleet: Fleet,
    actor: AdminActor,
    payload: TruckCreate,
) -> TruckResponse:
    """Register a truck unit (returns the existing one if already known)."""
    truck = await fleet.register_truck(payload.unit, actor)
    return TruckResponse.from_truck(truck)
