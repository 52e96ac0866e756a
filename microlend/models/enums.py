"""Reusable enums for lending ledger models."""

from enum import Enum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class LoanStatus(StringEnum):
    """Loan lifecycle states derived from the active/funded flags."""

    REQUESTED = "REQUESTED"
    FUNDED = "FUNDED"
    REPAID = "REPAID"
    LIQUIDATED = "LIQUIDATED"


class LoanClosure(StringEnum):
    """How an inactive loan was terminated."""

    REPAID = "REPAID"
    LIQUIDATED = "LIQUIDATED"


class LedgerEventType(StringEnum):
    """Names of domain events emitted by the ledger."""

    LOAN_REQUESTED = "LoanRequested"
    LOAN_FUNDED = "LoanFunded"
    LOAN_REPAID = "LoanRepaid"
    LOAN_FULLY_REPAID = "LoanFullyRepaid"
    LOAN_LIQUIDATED = "LoanLiquidated"
    OVERPAYMENT_REFUNDED = "OverpaymentRefunded"
    TOKENS_WITHDRAWN = "TokensWithdrawn"
