"""Loan ledger: the request -> fund -> repay / liquidate state machine.

All mutating operations run under one ledger lock and are all-or-nothing:
the stored record is only replaced, and events are only published, after
every precondition held and every token call succeeded. ``fund_loan``,
``repay`` and ``withdraw_tokens`` additionally hold the reentrancy guard
while they talk to the token service.
"""

import logging
import threading
from typing import List, Optional

from pydantic import ValidationError

from microlend.common.interest import (
    PERCENT_SCALE,
    compute_due_date,
    compute_overpayment,
    compute_total_due,
    is_eligible_for_liquidation,
)
from microlend.core.config import AppSettings
from microlend.models.enums import LoanClosure
from microlend.models.events import (
    LedgerEvent,
    LoanFullyRepaid,
    LoanFunded,
    LoanLiquidated,
    LoanRepaid,
    LoanRequested,
    OverpaymentRefunded,
    TokensWithdrawn,
)
from microlend.models.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidLoanRequestError,
    LedgerError,
    LoanAlreadyActiveError,
    LoanNotActiveOrUnfundedError,
    LoanNotFoundError,
    LoanNotFundableError,
    LoanNotLiquidatableError,
    NotEligibleForLiquidationError,
    RepaymentExceedsDueError,
    TransferFailedError,
)
from microlend.models.loans import LoanModel
from microlend.models.repositories import LoanRepository
from microlend.models.views import LiquidationReceipt, LoanDetailsView, LoanStatusView, RepaymentReceipt
from microlend.repositories.memory_loan_repository import InMemoryLoanRepository
from microlend.services.access_control import OwnershipGate
from microlend.services.clock import Clock, SystemClock
from microlend.services.event_log import EventLog
from microlend.services.reentrancy_guard import ReentrancyGuard
from microlend.services.token_service import TokenService


logger = logging.getLogger(__name__)


def _reject(error: LedgerError) -> LedgerError:
    """Log a precondition violation and hand it back for raising."""
    logger.warning("Ledger call rejected kind=%s detail=%s", error.kind, error.message)
    return error


def _require_amount(amount: int, field_name: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise _reject(InvalidAmountError("{0} must be a non-negative integer, got {1!r}".format(field_name, amount)))


class LoanLedger:
    """Owns borrower loan records and performs every state transition."""

    def __init__(
        self,
        token_service: TokenService,
        access_control: OwnershipGate,
        ledger_address: str,
        clock: Optional[Clock] = None,
        repository: Optional[LoanRepository] = None,
        event_log: Optional[EventLog] = None,
        guard: Optional[ReentrancyGuard] = None,
        liquidation_threshold_pct: int = 50,
        loan_to_value_pct: int = 75,
        restrict_funding_to_owner: bool = False,
    ) -> None:
        """Wire the ledger to its collaborators.

        Args:
            token_service: Mint/burn/transfer backend; ``transfer`` spends
                the balance held at ``ledger_address``.
            access_control: Owner gate for privileged calls.
            ledger_address: Account holding the ledger's own tokens.
            clock: Source of ``now``; defaults to ``SystemClock``.
            repository: Loan store; defaults to an in-memory repository.
            event_log: Event sink; defaults to a fresh ``EventLog``.
            guard: Reentrancy guard; defaults to a fresh guard.
            liquidation_threshold_pct: Coverage percentage (1-100) below
                which a funded loan may be liquidated. Fixed for the
                lifetime of the ledger.
            loan_to_value_pct: Informational LTV parameter (0-100), fixed.
            restrict_funding_to_owner: When True only the owner may fund.
        """
        if not 1 <= liquidation_threshold_pct <= PERCENT_SCALE:
            raise ValueError("liquidation_threshold_pct must be within 1..100")
        if not 0 <= loan_to_value_pct <= PERCENT_SCALE:
            raise ValueError("loan_to_value_pct must be within 0..100")
        self._token = token_service
        self._access = access_control
        self._ledger_address = ledger_address
        self._clock = clock or SystemClock()
        self._repository = repository or InMemoryLoanRepository()
        self._events = event_log or EventLog()
        self._guard = guard or ReentrancyGuard()
        self._liquidation_threshold_pct = liquidation_threshold_pct
        self._loan_to_value_pct = loan_to_value_pct
        self._restrict_funding_to_owner = restrict_funding_to_owner
        self._lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        token_service: TokenService,
        clock: Optional[Clock] = None,
        repository: Optional[LoanRepository] = None,
        event_log: Optional[EventLog] = None,
        ledger_address: Optional[str] = None,
    ) -> "LoanLedger":
        """Build a ledger from the ``ledger`` configuration section.

        ``ledger_address`` overrides ``ledger.ledger_address`` and must name
        the account ``token_service.transfer`` spends from.
        """
        return cls(
            token_service=token_service,
            access_control=OwnershipGate(settings.owner_address),
            ledger_address=ledger_address or settings.ledger_address,
            clock=clock,
            repository=repository,
            event_log=event_log,
            liquidation_threshold_pct=settings.liquidation_threshold_pct,
            loan_to_value_pct=settings.loan_to_value_pct,
            restrict_funding_to_owner=settings.restrict_funding_to_owner,
        )

    # ------------------------------------------------------------------
    # Read-only parameters
    # ------------------------------------------------------------------

    @property
    def liquidation_threshold_pct(self) -> int:
        return self._liquidation_threshold_pct

    @property
    def loan_to_value_pct(self) -> int:
        return self._loan_to_value_pct

    @property
    def restrict_funding_to_owner(self) -> bool:
        return self._restrict_funding_to_owner

    @property
    def ledger_address(self) -> str:
        return self._ledger_address

    @property
    def access_control(self) -> OwnershipGate:
        return self._access

    @property
    def event_log(self) -> EventLog:
        return self._events

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def request_loan(
        self,
        borrower_external_id: str,
        borrower: str,
        amount: int,
        interest_rate_bps: int,
        duration_days: int,
        credit_score: int,
    ) -> LoanModel:
        """Open a new unfunded loan for ``borrower``.

        Raises:
            InvalidLoanRequestError: If any parameter is malformed.
            LoanAlreadyActiveError: If the borrower's current loan is active.
        """
        for field_name, value in (
            ("amount", amount),
            ("interest_rate_bps", interest_rate_bps),
            ("duration_days", duration_days),
            ("credit_score", credit_score),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise _reject(
                    InvalidLoanRequestError("{0} must be a non-negative integer, got {1!r}".format(field_name, value))
                )

        with self._lock:
            now = self._clock.now()
            try:
                loan = LoanModel(
                    external_borrower_id=borrower_external_id,
                    borrower=borrower,
                    principal=amount,
                    repaid_amount=0,
                    interest_rate_bps=interest_rate_bps,
                    due_date=compute_due_date(now, duration_days),
                    credit_score=credit_score,
                    active=True,
                    funded=False,
                    requested_at=now,
                )
            except ValidationError as exc:
                raise _reject(InvalidLoanRequestError(str(exc)))

            current = self._repository.find(borrower)
            if current is not None and current.active:
                raise _reject(LoanAlreadyActiveError("Borrower {0} already has an active loan".format(borrower)))

            stored = self._repository.create(loan)
            logger.info(
                "Loan requested borrower=%s external_id=%s amount=%s rate_bps=%s due_date=%s credit_score=%s",
                borrower,
                borrower_external_id,
                amount,
                interest_rate_bps,
                stored.due_date,
                credit_score,
            )
            self._events.publish(
                [LoanRequested(timestamp=now, borrower=borrower, amount=amount, interest_rate_bps=interest_rate_bps)]
            )
            return stored

    def fund_loan(self, caller: str, borrower: str) -> LoanModel:
        """Disburse the principal of a requested loan by minting it to the borrower.

        Raises:
            ReentrantCallError: If entered from inside another guarded call.
            NotOwnerError: If funding is restricted to the owner and
                ``caller`` is someone else.
            LoanNotFundableError: If the loan is missing, closed or funded.
        """
        with self._lock, self._guard.guarded("fund_loan"):
            if self._restrict_funding_to_owner:
                self._access.assert_owner(caller)
            now = self._clock.now()
            loan = self._repository.find(borrower)
            if loan is None or not loan.active or loan.funded:
                raise _reject(LoanNotFundableError("Loan for {0} cannot be funded".format(borrower)))

            funded = loan.evolve(funded=True, funded_at=now, version=loan.version + 1)
            self._token.mint(loan.borrower, loan.principal)
            try:
                stored = self._repository.update(funded)
            except Exception:
                logger.exception("Funding commit failed borrower=%s; revoking minted principal", loan.borrower)
                self._revoke_mint(loan.borrower, loan.principal)
                raise
            logger.info("Loan funded borrower=%s principal=%s caller=%s", loan.borrower, loan.principal, caller)
            self._events.publish([LoanFunded(timestamp=now, borrower=loan.borrower, principal=loan.principal)])
            return stored

    def repay(self, caller: str, amount: int) -> RepaymentReceipt:
        """Repay part or all of the caller's loan by burning tokens.

        ``total_due`` is evaluated once on entry and used both for the
        sufficiency check and for the full-repayment check. When the new
        cumulative repaid amount reaches the snapshot the loan closes, and
        anything above it is minted back to the borrower.

        Raises:
            InvalidAmountError: If ``amount`` is negative.
            ReentrantCallError: If entered from inside another guarded call.
            LoanNotActiveOrUnfundedError: If there is no active funded loan.
            RepaymentExceedsDueError: If ``amount`` exceeds the total due.
        """
        _require_amount(amount)
        with self._lock, self._guard.guarded("repay"):
            now = self._clock.now()
            loan = self._repository.find(caller)
            if loan is None or not loan.active or not loan.funded:
                raise _reject(LoanNotActiveOrUnfundedError("No active funded loan for {0}".format(caller)))

            total_due = compute_total_due(loan, now)
            if amount > total_due:
                raise _reject(
                    RepaymentExceedsDueError(
                        "Repayment {0} exceeds total due {1} for {2}".format(amount, total_due, caller)
                    )
                )

            repaid_amount = loan.repaid_amount + amount
            fully_repaid = repaid_amount >= total_due
            refund = compute_overpayment(repaid_amount, total_due) if fully_repaid else 0

            changes = {"repaid_amount": repaid_amount, "version": loan.version + 1}
            events: List[LedgerEvent] = [
                LoanRepaid(timestamp=now, external_borrower_id=loan.external_borrower_id, amount=amount)
            ]
            if fully_repaid:
                changes.update(active=False, closure=LoanClosure.REPAID, closed_at=now)
                events.append(LoanFullyRepaid(timestamp=now, external_borrower_id=loan.external_borrower_id))
                if refund > 0:
                    events.append(OverpaymentRefunded(timestamp=now, borrower=loan.borrower, amount=refund))
            updated = loan.evolve(**changes)

            self._token.burn(loan.borrower, amount)
            try:
                if refund > 0:
                    self._token.mint(loan.borrower, refund)
                stored = self._repository.update(updated)
            except Exception:
                logger.exception("Repayment commit failed borrower=%s amount=%s; restoring burned tokens", caller, amount)
                self._restore_burn(loan.borrower, amount)
                raise

            logger.info(
                "Loan repaid borrower=%s amount=%s total_due=%s repaid_amount=%s fully_repaid=%s refund=%s",
                loan.borrower,
                amount,
                total_due,
                repaid_amount,
                fully_repaid,
                refund,
            )
            self._events.publish(events)
            return RepaymentReceipt(
                borrower=stored.borrower,
                external_borrower_id=stored.external_borrower_id,
                amount=amount,
                total_due_snapshot=total_due,
                repaid_amount=stored.repaid_amount,
                fully_repaid=fully_repaid,
                refund=refund,
            )

    def liquidate(self, caller: str, borrower: str) -> LiquidationReceipt:
        """Write off an under-repaid loan. Owner only; no tokens move.

        Raises:
            NotOwnerError: If ``caller`` is not the owner.
            LoanNotLiquidatableError: If there is no active funded loan.
            NotEligibleForLiquidationError: If repayment coverage is at or
                above the liquidation threshold.
        """
        with self._lock:
            self._access.assert_owner(caller)
            now = self._clock.now()
            loan = self._repository.find(borrower)
            if loan is None or not loan.active or not loan.funded:
                raise _reject(LoanNotLiquidatableError("Loan for {0} cannot be liquidated".format(borrower)))

            total_due = compute_total_due(loan, now)
            if not is_eligible_for_liquidation(loan.repaid_amount, total_due, self._liquidation_threshold_pct):
                raise _reject(
                    NotEligibleForLiquidationError(
                        "Loan for {0} repaid {1} of {2} due; threshold {3}%".format(
                            borrower, loan.repaid_amount, total_due, self._liquidation_threshold_pct
                        )
                    )
                )

            liquidation_amount = total_due - loan.repaid_amount
            closed = loan.evolve(
                active=False,
                closure=LoanClosure.LIQUIDATED,
                closed_at=now,
                version=loan.version + 1,
            )
            self._repository.update(closed)
            logger.warning(
                "Loan liquidated borrower=%s external_id=%s total_due=%s repaid_amount=%s liquidation_amount=%s",
                loan.borrower,
                loan.external_borrower_id,
                total_due,
                loan.repaid_amount,
                liquidation_amount,
            )
            self._events.publish(
                [
                    LoanLiquidated(
                        timestamp=now,
                        external_borrower_id=loan.external_borrower_id,
                        liquidation_amount=liquidation_amount,
                    )
                ]
            )
            return LiquidationReceipt(
                borrower=loan.borrower,
                external_borrower_id=loan.external_borrower_id,
                total_due_snapshot=total_due,
                repaid_amount=loan.repaid_amount,
                liquidation_amount=liquidation_amount,
            )

    def withdraw_tokens(self, caller: str, amount: int) -> bool:
        """Send ``amount`` of the ledger's own tokens to the current owner.

        Raises:
            NotOwnerError: If ``caller`` is not the owner.
            InvalidAmountError: If ``amount`` is negative.
            InsufficientBalanceError: If the ledger holds less than ``amount``;
                no transfer is attempted.
            TransferFailedError: If the token service reports failure.
        """
        with self._lock, self._guard.guarded("withdraw_tokens"):
            self._access.assert_owner(caller)
            _require_amount(amount)
            balance = self._token.balance_of(self._ledger_address)
            if amount > balance:
                raise _reject(
                    InsufficientBalanceError("Withdrawal {0} exceeds ledger balance {1}".format(amount, balance))
                )

            owner = self._access.current_owner()
            if not self._token.transfer(owner, amount):
                raise _reject(TransferFailedError("Token transfer of {0} to {1} failed".format(amount, owner)))

            logger.info("Tokens withdrawn owner=%s amount=%s", owner, amount)
            self._events.publish([TokensWithdrawn(timestamp=self._clock.now(), owner=owner, amount=amount)])
            return True

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def calculate_total_due(self, borrower: str) -> int:
        """Outstanding amount for the borrower's loan at the current time."""
        with self._lock:
            loan = self._repository.find(borrower)
            if loan is None:
                return 0
            return compute_total_due(loan, self._clock.now())

    def is_liquidatable(self, borrower: str) -> bool:
        """Whether ``liquidate`` would currently pass its eligibility checks."""
        with self._lock:
            loan = self._repository.find(borrower)
            if loan is None or not loan.active or not loan.funded:
                return False
            total_due = compute_total_due(loan, self._clock.now())
            return is_eligible_for_liquidation(loan.repaid_amount, total_due, self._liquidation_threshold_pct)

    def get_loan_status(self, borrower: str) -> LoanStatusView:
        """Repayment status plus the borrower's token balance.

        Raises:
            LoanNotFoundError: If the borrower never requested a loan.
        """
        with self._lock:
            loan = self._require_loan(borrower)
            now = self._clock.now()
            total_due = compute_total_due(loan, now)
            live = loan.active and loan.funded
            return LoanStatusView(
                borrower=loan.borrower,
                status=loan.status,
                active=loan.active,
                funded=loan.funded,
                repaid_amount=loan.repaid_amount,
                total_due=total_due,
                due_date=loan.due_date,
                overdue=live and now > loan.due_date,
                liquidatable=live
                and is_eligible_for_liquidation(loan.repaid_amount, total_due, self._liquidation_threshold_pct),
                token_balance=self._token.balance_of(loan.borrower),
            )

    def get_loan_details(self, borrower: str) -> LoanDetailsView:
        """Every loan field plus live total due and token balance.

        Raises:
            LoanNotFoundError: If the borrower never requested a loan.
        """
        with self._lock:
            loan = self._require_loan(borrower)
            return LoanDetailsView.from_loan(
                loan,
                total_due=compute_total_due(loan, self._clock.now()),
                token_balance=self._token.balance_of(loan.borrower),
            )

    def list_loans(self, active_only: bool = False) -> List[LoanDetailsView]:
        """Current loans of every borrower."""
        with self._lock:
            now = self._clock.now()
            loans = self._repository.get_active_loans() if active_only else self._repository.list_loans()
            return [
                LoanDetailsView.from_loan(
                    loan,
                    total_due=compute_total_due(loan, now),
                    token_balance=self._token.balance_of(loan.borrower),
                )
                for loan in loans
            ]

    def get_loan_history(self, borrower: str) -> List[LoanModel]:
        """Loans superseded by later requests, oldest first."""
        return self._repository.get_history(borrower)

    def get_token_balance(self, account: str) -> int:
        return self._token.balance_of(account)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_loan(self, borrower: str) -> LoanModel:
        loan = self._repository.find(borrower)
        if loan is None:
            raise LoanNotFoundError("No loan recorded for {0}".format(borrower))
        return loan

    def _restore_burn(self, borrower: str, amount: int) -> None:
        """Undo a burn whose repayment could not be committed."""
        try:
            self._token.mint(borrower, amount)
        except Exception:
            logger.exception("Failed to restore burned tokens borrower=%s amount=%s", borrower, amount)

    def _revoke_mint(self, borrower: str, amount: int) -> None:
        """Undo a principal mint whose funding could not be committed."""
        try:
            self._token.burn(borrower, amount)
        except Exception:
            logger.exception("Failed to revoke minted principal borrower=%s amount=%s", borrower, amount)
