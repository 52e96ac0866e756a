"""Unit tests for the loan ledger state machine."""

from pathlib import Path
import sys
import threading
import unittest
from unittest.mock import MagicMock


PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from microlend.common.interest import SECONDS_PER_DAY
from microlend.models.enums import LedgerEventType, LoanStatus
from microlend.models.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidLoanRequestError,
    LoanAlreadyActiveError,
    LoanNotActiveOrUnfundedError,
    LoanNotFoundError,
    LoanNotFundableError,
    LoanNotLiquidatableError,
    NotEligibleForLiquidationError,
    NotOwnerError,
    ReentrantCallError,
    RepaymentExceedsDueError,
    TokenOperationError,
    TransferFailedError,
    VersionConflictError,
)
from microlend.repositories import InMemoryLoanRepository
from microlend.services import (
    LedgerTokenAccount,
    LoanLedger,
    ManagedToken,
    ManualClock,
    OwnershipGate,
    ReentrancyGuard,
)


T0 = 1_700_000_000
OWNER = "0x00000000000000000000000000000000000000a1"
LEDGER = "0x00000000000000000000000000000000000000f0"
BORROWER = "0x00000000000000000000000000000000000000b1"
STRANGER = "0x00000000000000000000000000000000000000c2"


class FlakyTokenAccount(LedgerTokenAccount):
    """Token account whose next mint can be made to fail once."""

    def __init__(self, token: ManagedToken, ledger_address: str) -> None:
        super().__init__(token, ledger_address)
        self.fail_next_mint = False

    def mint(self, to: str, amount: int) -> None:
        if self.fail_next_mint:
            self.fail_next_mint = False
            raise TokenOperationError("mint unavailable")
        super().mint(to, amount)


class CallbackTokenAccount(LedgerTokenAccount):
    """Token account that calls back into the ledger from mint and burn."""

    def __init__(self, token: ManagedToken, ledger_address: str) -> None:
        super().__init__(token, ledger_address)
        self.on_mint = None
        self.on_burn = None

    def mint(self, to: str, amount: int) -> None:
        if self.on_mint is not None:
            self.on_mint()
        super().mint(to, amount)

    def burn(self, from_address: str, amount: int) -> None:
        if self.on_burn is not None:
            self.on_burn()
        super().burn(from_address, amount)


class FlakyLoanRepository(InMemoryLoanRepository):
    """Loan store whose next update can be made to fail once."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next_update = False

    def update(self, model):
        if self.fail_next_update:
            self.fail_next_update = False
            raise VersionConflictError("concurrent writer")
        return super().update(model)


class LoanLedgerTestCase(unittest.TestCase):
    """Shared ledger fixture on a manual clock."""

    account_class = LedgerTokenAccount
    repository_class = InMemoryLoanRepository
    restrict_funding_to_owner = False

    def setUp(self) -> None:
        self.clock = ManualClock(start=T0)
        self.token = ManagedToken(name="Test Credit", symbol="TST", decimals=18, minter=LEDGER)
        self.account = self.account_class(self.token, LEDGER)
        self.guard = ReentrancyGuard()
        self.repository = self.repository_class()
        self.ledger = LoanLedger(
            token_service=self.account,
            access_control=OwnershipGate(OWNER),
            ledger_address=LEDGER,
            clock=self.clock,
            repository=self.repository,
            guard=self.guard,
            liquidation_threshold_pct=50,
            restrict_funding_to_owner=self.restrict_funding_to_owner,
        )

    def open_loan(self, borrower: str = BORROWER, amount: int = 1000, fund: bool = True) -> None:
        self.ledger.request_loan(
            borrower_external_id="ext-{0}".format(borrower[-2:]),
            borrower=borrower,
            amount=amount,
            interest_rate_bps=1000,
            duration_days=30,
            credit_score=710,
        )
        if fund:
            self.ledger.fund_loan(OWNER, borrower)

    def event_names(self) -> list:
        return [event.name for event in self.ledger.event_log.events()]


class RequestLoanTests(LoanLedgerTestCase):
    """Validate loan requests."""

    def test_request_creates_unfunded_loan(self) -> None:
        loan = self.ledger.request_loan("ext-1", BORROWER, 1000, 1000, 30, 700)
        self.assertTrue(loan.active)
        self.assertFalse(loan.funded)
        self.assertEqual(loan.status, LoanStatus.REQUESTED)
        self.assertEqual(loan.due_date, T0 + 30 * SECONDS_PER_DAY)
        self.assertEqual(self.event_names(), [LedgerEventType.LOAN_REQUESTED])
        self.assertEqual(self.ledger.calculate_total_due(BORROWER), 0)

    def test_single_active_loan_per_borrower(self) -> None:
        self.open_loan(fund=False)
        with self.assertRaises(LoanAlreadyActiveError):
            self.ledger.request_loan("ext-2", BORROWER.upper().replace("0X", "0x"), 500, 1000, 30, 700)
        self.assertEqual(self.ledger.get_loan_details(BORROWER).principal, 1000)

    def test_invalid_parameters_rejected(self) -> None:
        with self.assertRaises(InvalidLoanRequestError):
            self.ledger.request_loan("ext-1", BORROWER, -1, 1000, 30, 700)
        with self.assertRaises(InvalidLoanRequestError):
            self.ledger.request_loan("ext-1", BORROWER, 1000, True, 30, 700)
        with self.assertRaises(InvalidLoanRequestError):
            self.ledger.request_loan("ext-1", "   ", 1000, 1000, 30, 700)
        self.assertEqual(len(self.ledger.event_log), 0)

    def test_new_request_after_closure_keeps_history(self) -> None:
        self.open_loan()
        self.ledger.liquidate(OWNER, BORROWER)
        self.ledger.request_loan("ext-2", BORROWER, 400, 500, 15, 720)
        history = self.ledger.get_loan_history(BORROWER)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, LoanStatus.LIQUIDATED)
        self.assertEqual(self.ledger.get_loan_details(BORROWER).principal, 400)


class FundLoanTests(LoanLedgerTestCase):
    """Validate loan funding."""

    def test_fund_mints_principal(self) -> None:
        self.open_loan()
        details = self.ledger.get_loan_details(BORROWER)
        self.assertTrue(details.funded)
        self.assertEqual(details.funded_at, T0)
        self.assertEqual(self.token.balance_of(BORROWER), 1000)
        self.assertEqual(self.event_names()[-1], LedgerEventType.LOAN_FUNDED)

    def test_fund_twice_fails(self) -> None:
        self.open_loan()
        with self.assertRaises(LoanNotFundableError):
            self.ledger.fund_loan(OWNER, BORROWER)
        self.assertEqual(self.token.balance_of(BORROWER), 1000)

    def test_fund_unknown_borrower_fails(self) -> None:
        with self.assertRaises(LoanNotFundableError):
            self.ledger.fund_loan(OWNER, STRANGER)

    def test_anyone_may_fund_by_default(self) -> None:
        self.open_loan(fund=False)
        self.ledger.fund_loan(STRANGER, BORROWER)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).funded)


class FundingCommitFailureTests(LoanLedgerTestCase):
    """Validate compensation when a funded record cannot be stored."""

    repository_class = FlakyLoanRepository

    def test_failed_commit_revokes_minted_principal(self) -> None:
        self.open_loan(fund=False)
        self.repository.fail_next_update = True
        with self.assertRaises(VersionConflictError):
            self.ledger.fund_loan(OWNER, BORROWER)

        self.assertFalse(self.ledger.get_loan_details(BORROWER).funded)
        self.assertEqual(self.token.balance_of(BORROWER), 0)
        self.assertEqual(self.token.total_supply, 0)
        self.assertEqual(self.event_names(), [LedgerEventType.LOAN_REQUESTED])
        self.assertFalse(self.guard.held)

        self.ledger.fund_loan(OWNER, BORROWER)
        self.assertEqual(self.token.balance_of(BORROWER), 1000)


class RestrictedFundingTests(LoanLedgerTestCase):
    """Validate owner-gated funding."""

    restrict_funding_to_owner = True

    def test_non_owner_cannot_fund(self) -> None:
        self.open_loan(fund=False)
        with self.assertRaises(NotOwnerError):
            self.ledger.fund_loan(STRANGER, BORROWER)
        self.assertFalse(self.ledger.get_loan_details(BORROWER).funded)
        self.assertEqual(self.token.balance_of(BORROWER), 0)
        self.assertFalse(self.guard.held)

        self.ledger.fund_loan(OWNER, BORROWER)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).funded)


class RepayTests(LoanLedgerTestCase):
    """Validate partial, full and excess repayments."""

    def setUp(self) -> None:
        super().setUp()
        self.open_loan()
        self.clock.advance(30 * SECONDS_PER_DAY)
        # Off-ledger income so the borrower can cover the interest.
        self.token.mint(LEDGER, BORROWER, 8)

    def test_full_repayment_closes_loan(self) -> None:
        self.assertEqual(self.ledger.calculate_total_due(BORROWER), 1008)
        receipt = self.ledger.repay(BORROWER, 1008)
        self.assertTrue(receipt.fully_repaid)
        self.assertEqual(receipt.refund, 0)
        self.assertEqual(receipt.total_due_snapshot, 1008)
        details = self.ledger.get_loan_details(BORROWER)
        self.assertFalse(details.active)
        self.assertEqual(details.status, LoanStatus.REPAID)
        self.assertEqual(details.closed_at, self.clock.now())
        self.assertEqual(self.token.balance_of(BORROWER), 0)
        self.assertEqual(
            self.event_names()[-2:],
            [LedgerEventType.LOAN_REPAID, LedgerEventType.LOAN_FULLY_REPAID],
        )

    def test_repayment_above_total_due_fails(self) -> None:
        self.token.mint(LEDGER, BORROWER, 500)
        with self.assertRaises(RepaymentExceedsDueError):
            self.ledger.repay(BORROWER, 1200)
        self.assertEqual(self.ledger.get_loan_details(BORROWER).repaid_amount, 0)
        self.assertEqual(self.token.balance_of(BORROWER), 1508)

    def test_partial_repayment_reduces_total_due(self) -> None:
        receipt = self.ledger.repay(BORROWER, 600)
        self.assertFalse(receipt.fully_repaid)
        self.assertEqual(receipt.repaid_amount, 600)
        self.assertEqual(self.ledger.calculate_total_due(BORROWER), 408)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).active)
        self.assertEqual(self.token.balance_of(BORROWER), 408)

    def test_refund_is_exact_after_partial_repayment(self) -> None:
        self.ledger.repay(BORROWER, 600)
        receipt = self.ledger.repay(BORROWER, 408)
        self.assertTrue(receipt.fully_repaid)
        self.assertEqual(receipt.total_due_snapshot, 408)
        self.assertEqual(receipt.repaid_amount, 1008)
        self.assertEqual(receipt.refund, 600)
        self.assertEqual(receipt.repaid_amount - receipt.refund, receipt.total_due_snapshot)
        self.assertEqual(self.token.balance_of(BORROWER), 600)
        refunds = self.ledger.event_log.events(name=LedgerEventType.OVERPAYMENT_REFUNDED)
        self.assertEqual(len(refunds), 1)
        self.assertEqual(refunds[0].amount, 600)

    def test_repaid_amount_is_non_decreasing(self) -> None:
        seen = []
        for amount in (100, 0, 250, 50):
            seen.append(self.ledger.repay(BORROWER, amount).repaid_amount)
        self.assertEqual(seen, sorted(seen))

    def test_repay_without_funded_loan_fails(self) -> None:
        with self.assertRaises(LoanNotActiveOrUnfundedError):
            self.ledger.repay(STRANGER, 10)
        self.ledger.request_loan("ext-c2", STRANGER, 100, 1000, 30, 600)
        with self.assertRaises(LoanNotActiveOrUnfundedError):
            self.ledger.repay(STRANGER, 10)

    def test_negative_amount_rejected(self) -> None:
        with self.assertRaises(InvalidAmountError):
            self.ledger.repay(BORROWER, -1)

    def test_burn_failure_leaves_state_unchanged(self) -> None:
        self.token.burn(LEDGER, BORROWER, 900)
        events_before = len(self.ledger.event_log)
        with self.assertRaises(TokenOperationError):
            self.ledger.repay(BORROWER, 500)
        self.assertEqual(self.ledger.get_loan_details(BORROWER).repaid_amount, 0)
        self.assertEqual(self.token.balance_of(BORROWER), 108)
        self.assertEqual(len(self.ledger.event_log), events_before)
        self.assertFalse(self.guard.held)

    def test_total_due_is_stable_without_state_change(self) -> None:
        first = self.ledger.calculate_total_due(BORROWER)
        second = self.ledger.calculate_total_due(BORROWER)
        self.assertEqual(first, second)

    def test_concurrent_repayments_are_serialized(self) -> None:
        threads = [threading.Thread(target=self.ledger.repay, args=(BORROWER, 10)) for _ in range(40)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(self.ledger.get_loan_details(BORROWER).repaid_amount, 400)
        self.assertEqual(self.token.balance_of(BORROWER), 608)


class RefundFailureTests(LoanLedgerTestCase):
    """Validate compensation when a refund cannot be minted."""

    account_class = FlakyTokenAccount

    def test_failed_refund_restores_burned_tokens(self) -> None:
        self.open_loan()
        self.clock.advance(30 * SECONDS_PER_DAY)
        self.token.mint(LEDGER, BORROWER, 8)
        self.ledger.repay(BORROWER, 600)

        self.account.fail_next_mint = True
        with self.assertRaises(TokenOperationError):
            self.ledger.repay(BORROWER, 408)

        details = self.ledger.get_loan_details(BORROWER)
        self.assertTrue(details.active)
        self.assertEqual(details.repaid_amount, 600)
        self.assertEqual(self.token.balance_of(BORROWER), 408)
        self.assertEqual(len(self.ledger.event_log.events(name=LedgerEventType.LOAN_FULLY_REPAID)), 0)


class LiquidationTests(LoanLedgerTestCase):
    """Validate owner liquidation."""

    def setUp(self) -> None:
        super().setUp()
        self.open_loan()
        self.clock.advance(30 * SECONDS_PER_DAY)

    def test_owner_liquidates_unpaid_loan(self) -> None:
        self.assertTrue(self.ledger.is_liquidatable(BORROWER))
        receipt = self.ledger.liquidate(OWNER, BORROWER)
        self.assertEqual(receipt.total_due_snapshot, 1008)
        self.assertEqual(receipt.liquidation_amount, 1008)
        details = self.ledger.get_loan_details(BORROWER)
        self.assertFalse(details.active)
        self.assertEqual(details.status, LoanStatus.LIQUIDATED)
        self.assertEqual(self.token.balance_of(BORROWER), 1000)
        self.assertEqual(self.ledger.calculate_total_due(BORROWER), 0)
        liquidated = self.ledger.event_log.events(name=LedgerEventType.LOAN_LIQUIDATED)
        self.assertEqual(liquidated[0].liquidation_amount, 1008)

    def test_partially_repaid_loan_below_threshold_is_eligible(self) -> None:
        self.ledger.repay(BORROWER, 300)
        receipt = self.ledger.liquidate(OWNER, BORROWER)
        self.assertEqual(receipt.total_due_snapshot, 708)
        self.assertEqual(receipt.liquidation_amount, 408)

    def test_loan_at_threshold_is_not_eligible(self) -> None:
        self.ledger.repay(BORROWER, 400)
        self.assertFalse(self.ledger.is_liquidatable(BORROWER))
        with self.assertRaises(NotEligibleForLiquidationError):
            self.ledger.liquidate(OWNER, BORROWER)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).active)

    def test_non_owner_cannot_liquidate(self) -> None:
        events_before = len(self.ledger.event_log)
        with self.assertRaises(NotOwnerError):
            self.ledger.liquidate(STRANGER, BORROWER)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).active)
        self.assertEqual(len(self.ledger.event_log), events_before)

    def test_unfunded_loan_cannot_be_liquidated(self) -> None:
        self.ledger.request_loan("ext-c2", STRANGER, 100, 1000, 30, 600)
        with self.assertRaises(LoanNotLiquidatableError):
            self.ledger.liquidate(OWNER, STRANGER)

    def test_closed_loan_cannot_be_liquidated_again(self) -> None:
        self.ledger.liquidate(OWNER, BORROWER)
        with self.assertRaises(LoanNotLiquidatableError):
            self.ledger.liquidate(OWNER, BORROWER)


class WithdrawTokensTests(LoanLedgerTestCase):
    """Validate treasury withdrawals."""

    def test_owner_withdraws_ledger_balance(self) -> None:
        self.token.mint(LEDGER, LEDGER, 500)
        self.assertTrue(self.ledger.withdraw_tokens(OWNER, 200))
        self.assertEqual(self.token.balance_of(OWNER), 200)
        self.assertEqual(self.token.balance_of(LEDGER), 300)
        withdrawn = self.ledger.event_log.events(name=LedgerEventType.TOKENS_WITHDRAWN)
        self.assertEqual(withdrawn[0].amount, 200)

    def test_non_owner_cannot_withdraw(self) -> None:
        self.token.mint(LEDGER, LEDGER, 500)
        with self.assertRaises(NotOwnerError):
            self.ledger.withdraw_tokens(STRANGER, 100)
        self.assertEqual(self.token.balance_of(LEDGER), 500)
        self.assertFalse(self.guard.held)


class WithdrawTokenServiceTests(unittest.TestCase):
    """Validate withdrawals against a mocked token service."""

    def setUp(self) -> None:
        self.token_service = MagicMock()
        self.ledger = LoanLedger(
            token_service=self.token_service,
            access_control=OwnershipGate(OWNER),
            ledger_address=LEDGER,
            clock=ManualClock(start=T0),
        )

    def test_insufficient_balance_skips_transfer(self) -> None:
        self.token_service.balance_of.return_value = 100
        with self.assertRaises(InsufficientBalanceError):
            self.ledger.withdraw_tokens(OWNER, 200)
        self.token_service.transfer.assert_not_called()

    def test_failed_transfer_raises(self) -> None:
        self.token_service.balance_of.return_value = 500
        self.token_service.transfer.return_value = False
        with self.assertRaises(TransferFailedError):
            self.ledger.withdraw_tokens(OWNER, 200)
        self.token_service.transfer.assert_called_once_with(OWNER, 200)
        self.assertEqual(len(self.ledger.event_log), 0)

    def test_negative_amount_rejected(self) -> None:
        with self.assertRaises(InvalidAmountError):
            self.ledger.withdraw_tokens(OWNER, -5)
        self.token_service.transfer.assert_not_called()


class ReentrancyTests(LoanLedgerTestCase):
    """Validate that token callbacks cannot re-enter guarded operations."""

    account_class = CallbackTokenAccount

    def test_mint_callback_cannot_reenter(self) -> None:
        self.open_loan(fund=False)
        self.account.on_mint = lambda: self.ledger.repay(BORROWER, 1)
        with self.assertRaises(ReentrantCallError):
            self.ledger.fund_loan(OWNER, BORROWER)
        self.assertFalse(self.guard.held)
        self.assertFalse(self.ledger.get_loan_details(BORROWER).funded)
        self.assertEqual(self.token.balance_of(BORROWER), 0)

        self.account.on_mint = None
        self.ledger.fund_loan(OWNER, BORROWER)
        self.assertTrue(self.ledger.get_loan_details(BORROWER).funded)

    def test_burn_callback_cannot_withdraw(self) -> None:
        self.open_loan()
        self.token.mint(LEDGER, LEDGER, 1000)
        self.account.on_burn = lambda: self.ledger.withdraw_tokens(OWNER, 1000)
        with self.assertRaises(ReentrantCallError):
            self.ledger.repay(BORROWER, 100)
        self.assertEqual(self.ledger.get_loan_details(BORROWER).repaid_amount, 0)
        self.assertEqual(self.token.balance_of(LEDGER), 1000)
        self.assertFalse(self.guard.held)


class ReadAccessorTests(LoanLedgerTestCase):
    """Validate read-side views."""

    def test_unknown_borrower(self) -> None:
        self.assertEqual(self.ledger.calculate_total_due(STRANGER), 0)
        self.assertFalse(self.ledger.is_liquidatable(STRANGER))
        with self.assertRaises(LoanNotFoundError):
            self.ledger.get_loan_status(STRANGER)
        with self.assertRaises(LoanNotFoundError):
            self.ledger.get_loan_details(STRANGER)

    def test_status_reports_overdue_and_balance(self) -> None:
        self.open_loan()
        self.clock.advance(31 * SECONDS_PER_DAY)
        status = self.ledger.get_loan_status(BORROWER)
        self.assertEqual(status.status, LoanStatus.FUNDED)
        self.assertTrue(status.overdue)
        self.assertTrue(status.liquidatable)
        self.assertEqual(status.token_balance, 1000)
        self.assertEqual(status.total_due, 1008)

    def test_list_loans_filters_active(self) -> None:
        self.open_loan()
        self.open_loan(borrower=STRANGER, amount=200)
        self.ledger.liquidate(OWNER, STRANGER)
        self.assertEqual(len(self.ledger.list_loans()), 2)
        active = self.ledger.list_loans(active_only=True)
        self.assertEqual([view.borrower for view in active], [BORROWER])

    def test_events_carry_sequence_and_timestamp(self) -> None:
        self.open_loan()
        events = self.ledger.event_log.events()
        self.assertEqual([event.sequence for event in events], [0, 1])
        self.assertTrue(all(event.timestamp == T0 for event in events))
        self.assertEqual(len(self.ledger.event_log.events(subject=BORROWER)), 2)

    def test_failing_subscriber_does_not_abort_call(self) -> None:
        def _explode(event) -> None:
            raise RuntimeError("observer down")

        self.ledger.event_log.subscribe(_explode)
        self.open_loan()
        self.assertTrue(self.ledger.get_loan_details(BORROWER).funded)


class LedgerConfigurationTests(unittest.TestCase):
    """Validate constructor parameter checks."""

    def test_threshold_out_of_range(self) -> None:
        token = LedgerTokenAccount(ManagedToken("T", "T", 18, LEDGER), LEDGER)
        for value in (0, 101):
            with self.assertRaises(ValueError):
                LoanLedger(token, OwnershipGate(OWNER), LEDGER, liquidation_threshold_pct=value)
        with self.assertRaises(ValueError):
            LoanLedger(token, OwnershipGate(OWNER), LEDGER, loan_to_value_pct=120)


if __name__ == "__main__":
    unittest.main()
