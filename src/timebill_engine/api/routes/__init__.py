"""API routes."""

from timebill_engine.api.routes.health import router as health_router
from timebill_engine.api.routes.invoices import router as invoices_router
from timebill_engine.api.routes.notifications import router as notifications_router
from timebill_engine.api.routes.payroll import router as payroll_router
from timebill_engine.api.routes.time_entries import router as time_entries_router

__all__ = [
    "health_router",
    "invoices_router",
    "notifications_router",
    "payroll_router",
    "time_entries_router",
]
