"""Common reusable arithmetic exports."""

from .interest import (
    ACCRUAL_WINDOW_SECONDS,
    BPS_SCALE,
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
    compute_due_date,
    compute_interest,
    compute_overpayment,
    compute_total_due,
    is_eligible_for_liquidation,
    liquidation_floor,
)

__all__ = [
    "ACCRUAL_WINDOW_SECONDS",
    "BPS_SCALE",
    "SECONDS_PER_DAY",
    "SECONDS_PER_YEAR",
    "compute_due_date",
    "compute_interest",
    "compute_overpayment",
    "compute_total_due",
    "is_eligible_for_liquidation",
    "liquidation_floor",
]
