"""HTTP API routers."""

from .loan_routes import build_loan_router
from .router import build_router

__all__ = ["build_loan_router", "build_router"]
