"""Loan domain model for the credit-scored micro-lending ledger."""

import logging
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from .base import BaseRecordModel, BasisPoints, Money, Timestamp, normalize_address
from .enums import LoanClosure, LoanStatus


logger = logging.getLogger(__name__)


class LoanModel(BaseRecordModel):
    """Represents one borrower's loan and its repayment progress."""

    external_borrower_id: str = Field(..., min_length=1)
    borrower: str = Field(..., min_length=1)

    principal: Money = Field(..., ge=0)
    repaid_amount: Money = Field(default=0, ge=0)
    interest_rate_bps: BasisPoints = Field(..., ge=0)
    due_date: Timestamp = Field(...)
    credit_score: int = Field(default=0, ge=0)

    active: bool = Field(default=True)
    funded: bool = Field(default=False)

    requested_at: Timestamp = Field(..., ge=0)
    funded_at: Optional[Timestamp] = Field(default=None)
    closed_at: Optional[Timestamp] = Field(default=None)
    closure: Optional[LoanClosure] = Field(default=None)

    @field_validator("borrower")
    @classmethod
    def _reject_blank_borrower(cls, value: str) -> str:
        """Borrower addresses must contain a non-whitespace key."""
        if not normalize_address(value):
            raise ValueError("borrower must not be blank")
        return value

    @model_validator(mode="after")
    def _validate_lifecycle_rules(self) -> "LoanModel":
        """Validate flag combinations allowed by the loan lifecycle."""
        try:
            if self.repaid_amount > 0 and not self.funded:
                raise ValueError("repaid_amount requires a funded loan")

            if self.active and self.closure is not None:
                raise ValueError("active loans cannot carry a closure")

            if not self.active and self.closure is None:
                raise ValueError("inactive loans must record a closure")

            if self.closure is not None and not self.funded:
                raise ValueError("only funded loans can be closed")

            if self.funded and self.funded_at is None:
                raise ValueError("funded loans must record funded_at")

            return self
        except ValueError:
            logger.exception(
                "Loan validation failed borrower=%s external_borrower_id=%s",
                self.borrower,
                self.external_borrower_id,
            )
            raise

    @property
    def borrower_key(self) -> str:
        """Normalized borrower address used as the storage key."""
        return normalize_address(self.borrower)

    @property
    def status(self) -> LoanStatus:
        """Lifecycle state derived from the active/funded flags."""
        if self.closure == LoanClosure.LIQUIDATED:
            return LoanStatus.LIQUIDATED
        if self.closure == LoanClosure.REPAID:
            return LoanStatus.REPAID
        if self.funded:
            return LoanStatus.FUNDED
        return LoanStatus.REQUESTED

    def evolve(self, **changes: Any) -> "LoanModel":
        """Return a validated copy with ``changes`` applied.

        The stored record is never touched; callers commit the copy through
        the repository once every side effect of the operation succeeded.
        """
        payload = self.model_dump()
        payload.update(changes)
        return LoanModel.model_validate(payload)
