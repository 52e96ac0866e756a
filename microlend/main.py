"""Application entrypoint for the micro-lending ledger FastAPI service."""

from typing import Optional

from fastapi import FastAPI
import uvicorn

from microlend.api.router import build_router
from microlend.core import get_logger, load_settings, setup_logging
from microlend.core.config import AppSettings
from microlend.services import (
    LedgerTokenAccount,
    LiquidationPoller,
    LoanLedger,
    ManagedToken,
    TokenService,
    Web3TokenService,
)


logger = get_logger(__name__)


def build_token_service(settings: AppSettings) -> TokenService:
    """Pick the on-chain token when web3 is enabled, otherwise the managed in-memory token."""
    if settings.web3_enabled:
        logger.info("Using on-chain token contract=%s", settings.token_contract_address)
        return Web3TokenService.from_settings(settings)

    token = ManagedToken(
        name=settings.token_name,
        symbol=settings.token_symbol,
        decimals=settings.token_decimals,
        minter=settings.ledger_address,
    )
    account = LedgerTokenAccount(token=token, ledger_address=settings.ledger_address)
    if settings.initial_ledger_balance > 0:
        account.mint(settings.ledger_address, settings.initial_ledger_balance)
        logger.info("Seeded ledger treasury amount=%s %s", settings.initial_ledger_balance, settings.token_symbol)
    return account


def build_ledger(settings: AppSettings) -> LoanLedger:
    """Create the ledger and its collaborators from settings.

    The ledger's treasury is whatever account the token service holds and
    spends from; on chain that is the signer, not ``ledger.ledger_address``.
    """
    token_service = build_token_service(settings)
    if token_service.ledger_address.lower() != settings.ledger_address.lower():
        logger.info(
            "Ledger treasury follows token service account=%s configured=%s",
            token_service.ledger_address,
            settings.ledger_address,
        )
    return LoanLedger.from_settings(
        settings,
        token_service=token_service,
        ledger_address=token_service.ledger_address,
    )


def create_app(settings: Optional[AppSettings] = None, ledger: Optional[LoanLedger] = None) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    ledger = ledger or build_ledger(settings)

    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.include_router(build_router(settings, ledger))
    app.state.ledger = ledger

    # ── Background services ──────────────────────────────────────────────
    poller = LiquidationPoller(settings=settings, ledger=ledger)
    app.state.liquidation_poller = poller

    @app.on_event("startup")
    async def _startup_background_services() -> None:
        """Start background services on application startup."""
        try:
            await app.state.liquidation_poller.start()
        except Exception:
            logger.exception("Failed to start background services during startup.")

    @app.on_event("shutdown")
    async def _shutdown_background_services() -> None:
        """Stop background services on application shutdown."""
        try:
            await app.state.liquidation_poller.stop()
        except Exception:
            logger.exception("Failed to stop background services during shutdown.")

    logger.info("Application initialized: %s", settings.app_name)
    return app


def run() -> None:
    """Start the ASGI server for local development."""
    settings = load_settings()
    setup_logging(settings.log_level)
    try:
        uvicorn.run("microlend.main:create_app", factory=True, host=settings.host, port=settings.port, reload=settings.debug)
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()
