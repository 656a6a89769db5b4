"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from driver_payroll.api.routes import (
    fleet_router,
    health_router,
    logs_router,
    periods_router,
    public_router,
)
from driver_payroll.database import create_tables, dispose_db, init_db
from driver_payroll.errors import (
    AuthorizationError,
    DriverPayrollError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from driver_payroll.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    await create_tables(engine)
    yield
    await dispose_db()


def _error(status_code: int, exc: DriverPayrollError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": exc.code, "extra": extra or None},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Driver Payroll API",
        description="Driver daily logs, pay periods and payroll",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, field=exc.field)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, entity=exc.entity, ids=exc.ids)

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, exc, required_role=exc.required_role)

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        return _error(
            status.HTTP_409_CONFLICT,
            exc,
            from_status=str(getattr(exc.from_status, "value", exc.from_status)),
            to_status=str(getattr(exc.to_status, "value", exc.to_status)),
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc, retryable=exc.retryable)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(public_router, prefix="/api/v1")
    app.include_router(logs_router, prefix="/api/v1")
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(fleet_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
