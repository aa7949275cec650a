"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timebill_engine import __version__
from timebill_engine.api.routes import (
    health_router,
    invoices_router,
    notifications_router,
    payroll_router,
    time_entries_router,
)
from timebill_engine.calculators.period import InvalidPeriodError
from timebill_engine.config import get_settings
from timebill_engine.database import create_schema, dispose_db, init_db
from timebill_engine.logging_config import configure_logging
from timebill_engine.services.directory import EntityNotFoundError
from timebill_engine.services.invoice_service import InvoiceValidationError
from timebill_engine.services.payroll_service import PayrollRunLockedError
from timebill_engine.services.state_machine import InvalidTransitionError
from timebill_engine.services.timer_service import TimeEntryLockedError, TimerConflictError

logger = logging.getLogger(__name__)

# Typed service errors and the HTTP status/code they surface as
ERROR_STATUS: dict[type[Exception], tuple[int, str]] = {
    TimerConflictError: (status.HTTP_409_CONFLICT, "TIMER_CONFLICT"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    TimeEntryLockedError: (status.HTTP_409_CONFLICT, "TIME_ENTRY_LOCKED"),
    PayrollRunLockedError: (status.HTTP_409_CONFLICT, "PAYROLL_RUN_LOCKED"),
    EntityNotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    InvalidPeriodError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_PERIOD"),
    InvoiceValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_INVOICE"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    engine, _ = init_db(settings.database_url)
    await create_schema(engine)
    logger.info("Timebill engine started", extra={"version": __version__})
    yield
    # Shutdown
    await dispose_db()


def _error_context(exc: Exception) -> dict[str, str] | None:
    if isinstance(exc, TimerConflictError):
        return {"active_entry_id": str(exc.active_entry_id)}
    if isinstance(exc, InvalidTransitionError):
        return {"from_status": exc.from_status, "to_status": exc.to_status}
    return None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Timebill Engine API",
        description="Timers, budget overrun invoicing and payroll aggregation",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    async def service_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Map typed service errors to their HTTP status."""
        status_code, code = ERROR_STATUS[type(exc)]
        content: dict[str, object] = {"detail": str(exc), "code": code}
        context = _error_context(exc)
        if context is not None:
            content["context"] = context
        return JSONResponse(status_code=status_code, content=content)

    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, service_exception_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(time_entries_router, prefix="/api/v1")
    app.include_router(invoices_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
