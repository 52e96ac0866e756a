"""Primary API router module wiring service routes around the ledger."""

import logging

from fastapi import APIRouter

from microlend.api.loan_routes import build_loan_router
from microlend.core.config import AppSettings
from microlend.services.loan_ledger import LoanLedger


logger = logging.getLogger(__name__)


def build_router(settings: AppSettings, ledger: LoanLedger) -> APIRouter:
    """Build and return the top-level API router.

    Args:
        settings: Application settings payload.
        ledger: Ledger shared by every route.

    Returns:
        APIRouter: Fully configured router with all endpoints.
    """
    router = APIRouter()
    router.include_router(build_loan_router(ledger))

    @router.get("/", summary="Root endpoint")
    def read_root() -> dict:
        """Return a basic message confirming service availability."""
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check() -> dict:
        """Return service health status for probes and monitors."""
        return {"status": "ok"}

    @router.get("/settings", summary="Settings snapshot")
    def get_settings_snapshot() -> dict:
        """Expose non-sensitive settings useful for local verification."""
        return {
            "app_name": settings.app_name,
            "debug": settings.debug,
            "owner_address": ledger.access_control.current_owner(),
            "ledger_address": ledger.ledger_address,
            "liquidation_threshold_pct": ledger.liquidation_threshold_pct,
            "loan_to_value_pct": ledger.loan_to_value_pct,
            "restrict_funding_to_owner": ledger.restrict_funding_to_owner,
            "token_symbol": settings.token_symbol,
            "web3_enabled": settings.web3_enabled,
            "liquidator_enabled": settings.liquidator_enabled,
        }

    logger.info("API router built for %s", settings.app_name)
    return router
