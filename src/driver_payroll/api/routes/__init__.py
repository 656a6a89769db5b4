"""API routes."""

from driver_payroll.api.routes.fleet import router as fleet_router
from driver_payroll.api.routes.health import router as health_router
from driver_payroll.api.routes.logs import router as logs_router
from driver_payroll.api.routes.periods import router as periods_router
from driver_payroll.api.routes.public import router as public_router

__all__ = [
    "fleet_router",
    "health_router",
    "logs_router",
    "periods_router",
    "public_router",
]
