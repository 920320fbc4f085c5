"""Aggregate router exports."""
from .auth import router as auth_router
from .reports import router as reports_router

__all__ = ["auth_router", "reports_router"]
