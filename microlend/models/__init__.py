"""Public model package exports for the lending ledger."""

from .base import BaseRecordModel, BasisPoints, Money, Timestamp, normalize_address
from .enums import LedgerEventType, LoanClosure, LoanStatus
from .events import (
    LedgerEvent,
    LoanFullyRepaid,
    LoanFunded,
    LoanLiquidated,
    LoanRepaid,
    LoanRequested,
    OverpaymentRefunded,
    TokensWithdrawn,
)
from .exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidLoanRequestError,
    LedgerError,
    LoanAlreadyActiveError,
    LoanNotActiveOrUnfundedError,
    LoanNotFoundError,
    LoanNotFundableError,
    LoanNotLiquidatableError,
    ModelError,
    ModelNotFoundError,
    ModelValidationError,
    NotEligibleForLiquidationError,
    NotOwnerError,
    ReentrantCallError,
    RepaymentExceedsDueError,
    TokenOperationError,
    TransferFailedError,
    VersionConflictError,
)
from .loans import LoanModel
from .repositories import LoanRepository
from .views import LiquidationReceipt, LoanDetailsView, LoanStatusView, RepaymentReceipt

__all__ = [
    "BaseRecordModel",
    "BasisPoints",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "InvalidLoanRequestError",
    "LedgerError",
    "LedgerEvent",
    "LedgerEventType",
    "LiquidationReceipt",
    "LoanAlreadyActiveError",
    "LoanClosure",
    "LoanDetailsView",
    "LoanFullyRepaid",
    "LoanFunded",
    "LoanLiquidated",
    "LoanModel",
    "LoanNotActiveOrUnfundedError",
    "LoanNotFoundError",
    "LoanNotFundableError",
    "LoanNotLiquidatableError",
    "LoanRepaid",
    "LoanRepository",
    "LoanRequested",
    "LoanStatus",
    "LoanStatusView",
    "ModelError",
    "ModelNotFoundError",
    "ModelValidationError",
    "Money",
    "NotEligibleForLiquidationError",
    "NotOwnerError",
    "OverpaymentRefunded",
    "ReentrantCallError",
    "RepaymentExceedsDueError",
    "RepaymentReceipt",
    "Timestamp",
    "TokenOperationError",
    "TokensWithdrawn",
    "TransferFailedError",
    "VersionConflictError",
    "normalize_address",
]
