"""Canonical interest and liquidation math for the lending ledger.

Every amount is an integer number of token units and every division
truncates, so results are reproducible bit-for-bit across nodes:

    loan_start = due_date - ACCRUAL_WINDOW_SECONDS
    elapsed    = max(0, now - loan_start)
    interest   = principal * rate_bps * elapsed // (SECONDS_PER_YEAR * BPS_SCALE)
    total_due  = max(0, principal + interest - repaid_amount)

The accrual window is a fixed 30 days and does not depend on the requested
loan duration. ``due_date`` is the only stored time anchor.
"""

from __future__ import annotations

from typing import Protocol

# ---------------------------------------------------------------------------
# Time and rate scaling
# ---------------------------------------------------------------------------
SECONDS_PER_DAY: int = 86400
DAYS_PER_YEAR: int = 365
SECONDS_PER_YEAR: int = DAYS_PER_YEAR * SECONDS_PER_DAY
BPS_SCALE: int = 10_000

ACCRUAL_WINDOW_DAYS: int = 30
ACCRUAL_WINDOW_SECONDS: int = ACCRUAL_WINDOW_DAYS * SECONDS_PER_DAY

PERCENT_SCALE: int = 100


class LoanSnapshot(Protocol):
    """Fields of a loan the calculator reads."""

    principal: int
    repaid_amount: int
    interest_rate_bps: int
    due_date: int
    active: bool
    funded: bool


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def compute_due_date(requested_at: int, duration_days: int) -> int:
    """Absolute due date fixed at request time."""
    return requested_at + duration_days * SECONDS_PER_DAY


def accrual_start(due_date: int) -> int:
    """Start of interest accrual, back-derived from the due date."""
    return due_date - ACCRUAL_WINDOW_SECONDS


def elapsed_accrual_seconds(due_date: int, now: int) -> int:
    """Seconds of accrued interest at ``now``; zero before accrual starts."""
    return max(0, now - accrual_start(due_date))


def compute_interest(principal: int, interest_rate_bps: int, elapsed_seconds: int) -> int:
    """Linear simple interest, annualized, truncated toward zero.

    Example: 1000 units at 1000 bps for 30 days
        1000 * 1000 * 2_592_000 // 315_360_000_000 = 8
    """
    if principal <= 0 or interest_rate_bps <= 0 or elapsed_seconds <= 0:
        return 0
    return (principal * interest_rate_bps * elapsed_seconds) // (SECONDS_PER_YEAR * BPS_SCALE)


def compute_total_due(loan: LoanSnapshot, now: int) -> int:
    """Outstanding amount (principal plus interest, net of repayments).

    Returns 0 for loans that are not both active and funded.
    """
    if not loan.active or not loan.funded:
        return 0
    elapsed = elapsed_accrual_seconds(loan.due_date, now)
    gross = loan.principal + compute_interest(loan.principal, loan.interest_rate_bps, elapsed)
    return max(0, gross - loan.repaid_amount)


def liquidation_floor(total_due: int, threshold_pct: int) -> int:
    """Repayment coverage below which a loan may be liquidated."""
    return (total_due * threshold_pct) // PERCENT_SCALE


def is_eligible_for_liquidation(repaid_amount: int, total_due: int, threshold_pct: int) -> bool:
    """Return True while ``repaid_amount`` is below the threshold fraction of ``total_due``."""
    return repaid_amount < liquidation_floor(total_due, threshold_pct)


def compute_overpayment(repaid_amount: int, total_due: int) -> int:
    """Amount repaid beyond the total-due snapshot, never negative."""
    return max(0, repaid_amount - total_due)
