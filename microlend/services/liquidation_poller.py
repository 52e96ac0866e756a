"""Background liquidation poller that writes off under-repaid loans as the owner."""

import asyncio
import logging
from typing import List, Optional

from microlend.core.config import AppSettings
from microlend.models.exceptions import LedgerError
from microlend.services.loan_ledger import LoanLedger


logger = logging.getLogger(__name__)


class LiquidationPoller:
    """Periodically scan active loans and liquidate the eligible ones."""

    def __init__(self, settings: AppSettings, ledger: LoanLedger) -> None:
        """Create a poller bound to one ledger and its owner identity."""
        self._settings = settings
        self._ledger = ledger
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def _is_enabled(self) -> bool:
        """Return whether poller feature is enabled."""
        return self._settings.liquidator_enabled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start polling loop in background task if enabled."""
        if not self._is_enabled():
            logger.info("Liquidation poller disabled by liquidator.enabled=false")
            return
        if self.running:
            logger.info("Liquidation poller already running.")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="liquidation-poller")
        logger.info("Liquidation poller started interval=%ss", self._settings.liquidator_poll_interval_sec)

    async def stop(self) -> None:
        """Gracefully stop background polling task."""
        if not self._task:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Liquidation poller task cancelled.")
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        """Main polling loop for liquidation checks."""
        logger.info("Liquidation poller loop running.")
        while not self._stop_event.is_set():
            try:
                await asyncio.to_thread(self.poll_once)
            except Exception:
                logger.exception("Unhandled error during liquidation poll cycle.")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=float(self._settings.liquidator_poll_interval_sec),
                )
            except asyncio.TimeoutError:
                continue

    def poll_once(self) -> List[str]:
        """Execute one liquidation cycle and return the liquidated borrowers."""
        owner = self._ledger.access_control.current_owner()
        candidates = [view.borrower for view in self._ledger.list_loans(active_only=True) if view.funded]
        if not candidates:
            logger.debug("No funded active loans to evaluate.")
            return []

        logger.info("Liquidation cycle started candidates=%d", len(candidates))
        liquidated = []
        for borrower in candidates:
            if self._evaluate_borrower(owner, borrower):
                liquidated.append(borrower)
        return liquidated

    def _evaluate_borrower(self, owner: str, borrower: str) -> bool:
        """Liquidate ``borrower`` when coverage is below the threshold."""
        try:
            if not self._ledger.is_liquidatable(borrower):
                return False
            receipt = self._ledger.liquidate(owner, borrower)
            logger.warning(
                "Poller liquidated borrower=%s liquidation_amount=%s",
                borrower,
                receipt.liquidation_amount,
            )
            return True
        except LedgerError as exc:
            logger.warning("Liquidation skipped borrower=%s kind=%s", borrower, exc.kind)
            return False
        except Exception:
            logger.exception("Failed borrower evaluation borrower=%s", borrower)
            return False
