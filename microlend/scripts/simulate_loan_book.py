"""Script to run a synthetic loan book through the full ledger lifecycle."""

import argparse
import json
import logging
from pathlib import Path
import random
import sys


PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from microlend.common.interest import SECONDS_PER_DAY
from microlend.core.config import load_settings
from microlend.models.exceptions import LedgerError
from microlend.services import (
    LedgerTokenAccount,
    LiquidationPoller,
    LoanLedger,
    ManagedToken,
    ManualClock,
    OwnershipGate,
)


logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)


def _random_address(rng: random.Random) -> str:
    return "0x" + "".join(rng.choice("0123456789abcdef") for _ in range(40))


def main() -> None:
    """Simulate borrowers of mixed credit quality and print a book summary."""
    parser = argparse.ArgumentParser(description="Simulate a micro-lending loan book.")
    parser.add_argument("--borrowers", type=int, default=20, help="Number of synthetic borrowers.")
    parser.add_argument("--days", type=int, default=45, help="Days to advance before settlement.")
    parser.add_argument("--seed", type=int, default=7, help="Random seed.")
    parser.add_argument("--config", type=str, default=None, help="Optional config.yml path.")
    args = parser.parse_args()

    settings = load_settings(args.config)
    rng = random.Random(args.seed)
    clock = ManualClock(start=1_700_000_000)
    token = ManagedToken(
        name=settings.token_name,
        symbol=settings.token_symbol,
        decimals=settings.token_decimals,
        minter=settings.ledger_address,
    )
    ledger = LoanLedger(
        token_service=LedgerTokenAccount(token, settings.ledger_address),
        access_control=OwnershipGate(settings.owner_address),
        ledger_address=settings.ledger_address,
        clock=clock,
        liquidation_threshold_pct=settings.liquidation_threshold_pct,
        loan_to_value_pct=settings.loan_to_value_pct,
    )

    borrowers = []
    for index in range(args.borrowers):
        borrower = _random_address(rng)
        credit_score = rng.randint(300, 850)
        ledger.request_loan(
            borrower_external_id="ext-{0:04d}".format(index),
            borrower=borrower,
            amount=rng.randrange(100, 5000) * 10**6,
            interest_rate_bps=rng.choice([500, 1000, 1500, 2500]),
            duration_days=rng.choice([15, 30, 60]),
            credit_score=credit_score,
        )
        ledger.fund_loan(settings.owner_address, borrower)
        borrowers.append((borrower, credit_score))

    clock.advance(args.days * SECONDS_PER_DAY)

    for borrower, credit_score in borrowers:
        due = ledger.calculate_total_due(borrower)
        if credit_score >= 700:
            # Off-ledger income covering the accrued interest.
            token.mint(settings.ledger_address, borrower, max(0, due - token.balance_of(borrower)))
            payment = due
        elif credit_score >= 550:
            payment = min(due, token.balance_of(borrower)) * rng.choice([40, 60, 80]) // 100
        else:
            payment = 0
        if payment <= 0:
            continue
        try:
            ledger.repay(borrower, payment)
        except LedgerError:
            logger.exception("Simulated repayment failed borrower=%s", borrower)

    poller = LiquidationPoller(settings=settings, ledger=ledger)
    liquidated = poller.poll_once()

    loans = ledger.list_loans()
    summary = {
        "borrowers": len(loans),
        "repaid": sum(1 for view in loans if view.status.value == "REPAID"),
        "liquidated": len(liquidated),
        "still_active": sum(1 for view in loans if view.active),
        "principal_issued": sum(view.principal for view in loans),
        "total_repaid": sum(view.repaid_amount for view in loans),
        "outstanding": sum(view.total_due for view in loans),
        "events": len(ledger.event_log),
        "token_supply": token.total_supply,
    }
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
