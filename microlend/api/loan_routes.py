"""Loan lifecycle routes exposing the ledger over HTTP."""

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Header, HTTPException, Query, status
from pydantic import BaseModel, Field
from web3 import Web3

from microlend.models.enums import LedgerEventType
from microlend.models.exceptions import (
    InvalidAmountError,
    InvalidLoanRequestError,
    LedgerError,
    LoanNotFoundError,
    NotOwnerError,
    TokenOperationError,
    TransferFailedError,
)
from microlend.services.loan_ledger import LoanLedger


logger = logging.getLogger(__name__)

CALLER_HEADER = "X-Caller-Address"


class LoanRequestBody(BaseModel):
    """Request payload for opening a loan."""

    borrower_external_id: str = Field(..., min_length=1)
    borrower: str = Field(..., min_length=6)
    amount: int = Field(..., ge=0)
    interest_rate_bps: int = Field(..., ge=0)
    duration_days: int = Field(..., ge=0)
    credit_score: int = Field(default=0, ge=0)


class RepayBody(BaseModel):
    """Request payload for repaying the caller's loan."""

    amount: int = Field(..., ge=0)


class WithdrawBody(BaseModel):
    """Request payload for withdrawing ledger-held tokens to the owner."""

    amount: int = Field(..., ge=0)


def _status_for(exc: LedgerError) -> int:
    """Map ledger error kinds to HTTP status codes."""
    if isinstance(exc, NotOwnerError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, LoanNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidAmountError, InvalidLoanRequestError)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (TransferFailedError, TokenOperationError)):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_409_CONFLICT


def _raise_http(exc: LedgerError) -> NoReturn:
    raise HTTPException(status_code=_status_for(exc), detail={"error": exc.kind, "detail": exc.message})


def _require_address(value: Optional[str], field_name: str) -> str:
    """Validate an EVM address and return its checksum form."""
    normalized = (value or "").strip()
    if not Web3.is_address(normalized):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "InvalidAddress", "detail": "Invalid {0}: {1!r}".format(field_name, value)},
        )
    return Web3.to_checksum_address(normalized)


def build_loan_router(ledger: LoanLedger) -> APIRouter:
    """Build routes for loan requests, funding, repayment and liquidation.

    Args:
        ledger: Ledger instance shared by every route.

    Returns:
        APIRouter: Router with loan and treasury endpoints.
    """
    router = APIRouter(tags=["loans"])

    @router.post("/loans", summary="Request a loan", status_code=status.HTTP_201_CREATED)
    def request_loan(payload: LoanRequestBody) -> dict:
        """Open an unfunded loan for the borrower."""
        borrower = _require_address(payload.borrower, "borrower")
        try:
            loan = ledger.request_loan(
                borrower_external_id=payload.borrower_external_id,
                borrower=borrower,
                amount=payload.amount,
                interest_rate_bps=payload.interest_rate_bps,
                duration_days=payload.duration_days,
                credit_score=payload.credit_score,
            )
            return loan.to_record()
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/loans/repay", summary="Repay the caller's loan")
    def repay(payload: RepayBody, x_caller_address: Optional[str] = Header(default=None)) -> dict:
        """Burn tokens from the caller against their active loan."""
        caller = _require_address(x_caller_address, CALLER_HEADER)
        try:
            return ledger.repay(caller, payload.amount).model_dump(mode="json")
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/loans/{borrower}/fund", summary="Fund a requested loan")
    def fund_loan(borrower: str, x_caller_address: Optional[str] = Header(default=None)) -> dict:
        """Mint the principal to the borrower."""
        caller = _require_address(x_caller_address, CALLER_HEADER)
        try:
            return ledger.fund_loan(caller, _require_address(borrower, "borrower")).to_record()
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/loans/{borrower}/liquidate", summary="Liquidate an under-repaid loan")
    def liquidate(borrower: str, x_caller_address: Optional[str] = Header(default=None)) -> dict:
        """Owner-only write-off of a loan below the coverage threshold."""
        caller = _require_address(x_caller_address, CALLER_HEADER)
        try:
            return ledger.liquidate(caller, _require_address(borrower, "borrower")).model_dump(mode="json")
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/loans", summary="List loans")
    def list_loans(active_only: bool = False) -> dict:
        """Return current loans, optionally only active ones."""
        loans = ledger.list_loans(active_only=active_only)
        return {"total": len(loans), "loans": [view.model_dump(mode="json") for view in loans]}

    @router.get("/loans/{borrower}", summary="Loan details")
    def loan_details(borrower: str) -> dict:
        """Return every loan field plus the borrower's token balance."""
        try:
            return ledger.get_loan_details(_require_address(borrower, "borrower")).model_dump(mode="json")
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/loans/{borrower}/history", summary="Closed loans")
    def loan_history(borrower: str) -> dict:
        """Return loans superseded by later requests, oldest first."""
        checksum = _require_address(borrower, "borrower")
        history = ledger.get_loan_history(checksum)
        return {"borrower": checksum, "total": len(history), "loans": [loan.to_record() for loan in history]}

    @router.get("/loans/{borrower}/status", summary="Loan status")
    def loan_status(borrower: str) -> dict:
        """Return repayment status of the borrower's loan."""
        try:
            return ledger.get_loan_status(_require_address(borrower, "borrower")).model_dump(mode="json")
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/loans/{borrower}/total-due", summary="Total due")
    def total_due(borrower: str) -> dict:
        """Return the outstanding amount at the current time."""
        checksum = _require_address(borrower, "borrower")
        return {"borrower": checksum, "total_due": ledger.calculate_total_due(checksum)}

    @router.post("/treasury/withdraw", summary="Withdraw ledger tokens to the owner")
    def withdraw(payload: WithdrawBody, x_caller_address: Optional[str] = Header(default=None)) -> dict:
        """Owner-only transfer of ledger-held tokens."""
        caller = _require_address(x_caller_address, CALLER_HEADER)
        try:
            success = ledger.withdraw_tokens(caller, payload.amount)
            return {
                "success": success,
                "amount": payload.amount,
                "owner": ledger.access_control.current_owner(),
                "ledger_balance": ledger.get_token_balance(ledger.ledger_address),
            }
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/events", summary="Ledger event log")
    def list_events(
        name: Optional[LedgerEventType] = None,
        subject: Optional[str] = None,
        since: int = Query(default=0, ge=0),
    ) -> dict:
        """Return published ledger events, optionally filtered."""
        events = ledger.event_log.events(name=name, subject=subject, since=since)
        return {"total": len(events), "events": [event.model_dump(mode="json") for event in events]}

    return router
