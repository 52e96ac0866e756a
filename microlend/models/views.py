"""Read-side projections and operation receipts returned by the ledger."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import Money, Timestamp
from .enums import LoanStatus
from .loans import LoanModel


class LoanStatusView(BaseModel):
    """Compact repayment status for one borrower."""

    model_config = ConfigDict(frozen=True)

    borrower: str
    status: LoanStatus
    active: bool
    funded: bool
    repaid_amount: Money = Field(..., ge=0)
    total_due: Money = Field(..., ge=0)
    due_date: Timestamp
    overdue: bool
    liquidatable: bool
    token_balance: Money = Field(..., ge=0)


class LoanDetailsView(BaseModel):
    """Full loan record plus the borrower's current token balance."""

    model_config = ConfigDict(frozen=True)

    external_borrower_id: str
    borrower: str
    principal: Money
    repaid_amount: Money
    interest_rate_bps: int
    due_date: Timestamp
    credit_score: int
    active: bool
    funded: bool
    status: LoanStatus
    requested_at: Timestamp
    funded_at: Optional[Timestamp] = None
    closed_at: Optional[Timestamp] = None
    total_due: Money
    token_balance: Money

    @classmethod
    def from_loan(cls, loan: LoanModel, total_due: Money, token_balance: Money) -> "LoanDetailsView":
        """Project a stored loan together with live figures."""
        return cls(
            external_borrower_id=loan.external_borrower_id,
            borrower=loan.borrower,
            principal=loan.principal,
            repaid_amount=loan.repaid_amount,
            interest_rate_bps=loan.interest_rate_bps,
            due_date=loan.due_date,
            credit_score=loan.credit_score,
            active=loan.active,
            funded=loan.funded,
            status=loan.status,
            requested_at=loan.requested_at,
            funded_at=loan.funded_at,
            closed_at=loan.closed_at,
            total_due=total_due,
            token_balance=token_balance,
        )


class RepaymentReceipt(BaseModel):
    """Outcome of a successful repay call."""

    model_config = ConfigDict(frozen=True)

    borrower: str
    external_borrower_id: str
    amount: Money
    total_due_snapshot: Money
    repaid_amount: Money
    fully_repaid: bool
    refund: Money = 0


class LiquidationReceipt(BaseModel):
    """Outcome of a successful liquidation."""

    model_config = ConfigDict(frozen=True)

    borrower: str
    external_borrower_id: str
    total_due_snapshot: Money
    repaid_amount: Money
    liquidation_amount: Money
