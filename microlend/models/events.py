"""Domain events emitted by the loan ledger for observers and audit logs."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import Money, Timestamp
from .enums import LedgerEventType


class LedgerEvent(BaseModel):
    """Common envelope for ledger events.

    ``sequence`` is assigned by the event log when the event is published;
    ``timestamp`` is the clock reading of the call that emitted it.
    """

    model_config = ConfigDict(frozen=True)

    name: LedgerEventType
    timestamp: Timestamp = Field(..., ge=0)
    sequence: Optional[int] = Field(default=None, ge=0)

    @property
    def subject(self) -> str:
        """Identifier the event is about, used for filtering."""
        return ""


class LoanRequested(LedgerEvent):
    name: Literal[LedgerEventType.LOAN_REQUESTED] = LedgerEventType.LOAN_REQUESTED
    borrower: str
    amount: Money
    interest_rate_bps: int

    @property
    def subject(self) -> str:
        return self.borrower


class LoanFunded(LedgerEvent):
    name: Literal[LedgerEventType.LOAN_FUNDED] = LedgerEventType.LOAN_FUNDED
    borrower: str
    principal: Money

    @property
    def subject(self) -> str:
        return self.borrower


class LoanRepaid(LedgerEvent):
    name: Literal[LedgerEventType.LOAN_REPAID] = LedgerEventType.LOAN_REPAID
    external_borrower_id: str
    amount: Money

    @property
    def subject(self) -> str:
        return self.external_borrower_id


class LoanFullyRepaid(LedgerEvent):
    name: Literal[LedgerEventType.LOAN_FULLY_REPAID] = LedgerEventType.LOAN_FULLY_REPAID
    external_borrower_id: str

    @property
    def subject(self) -> str:
        return self.external_borrower_id


class LoanLiquidated(LedgerEvent):
    name: Literal[LedgerEventType.LOAN_LIQUIDATED] = LedgerEventType.LOAN_LIQUIDATED
    external_borrower_id: str
    liquidation_amount: Money

    @property
    def subject(self) -> str:
        return self.external_borrower_id


class OverpaymentRefunded(LedgerEvent):
    name: Literal[LedgerEventType.OVERPAYMENT_REFUNDED] = LedgerEventType.OVERPAYMENT_REFUNDED
    borrower: str
    amount: Money

    @property
    def subject(self) -> str:
        return self.borrower


class TokensWithdrawn(LedgerEvent):
    name: Literal[LedgerEventType.TOKENS_WITHDRAWN] = LedgerEventType.TOKENS_WITHDRAWN
    owner: str
    amount: Money

    @property
    def subject(self) -> str:
        return self.owner
