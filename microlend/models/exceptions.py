"""Custom exceptions for model, repository and ledger layers."""


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class ModelNotFoundError(ModelError):
    """Raised when a requested record does not exist."""


class VersionConflictError(ModelError):
    """Raised when optimistic concurrency version checks fail."""


class LedgerError(Exception):
    """Base class for ledger precondition violations.

    Every subclass carries a stable ``kind`` used by API error payloads and
    audit logs. Raising one means the operation made no state change.
    """

    kind = "LedgerError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class LoanAlreadyActiveError(LedgerError):
    """Raised when a borrower requests a loan while one is still active."""

    kind = "LoanAlreadyActive"


class LoanNotFundableError(LedgerError):
    """Raised when funding a loan that is missing, closed or already funded."""

    kind = "LoanNotFundable"


class LoanNotActiveOrUnfundedError(LedgerError):
    """Raised when repaying a loan that is missing, closed or not funded."""

    kind = "LoanNotActiveOrUnfunded"


class RepaymentExceedsDueError(LedgerError):
    """Raised when a repayment is larger than the total currently due."""

    kind = "RepaymentExceedsDue"


class NotOwnerError(LedgerError):
    """Raised when an owner-only operation is called by someone else."""

    kind = "NotOwner"


class LoanNotLiquidatableError(LedgerError):
    """Raised when liquidating a loan that is missing, closed or not funded."""

    kind = "LoanNotLiquidatable"


class NotEligibleForLiquidationError(LedgerError):
    """Raised when repayment coverage is at or above the liquidation threshold."""

    kind = "NotEligibleForLiquidation"


class InsufficientBalanceError(LedgerError):
    """Raised when withdrawing more tokens than the ledger holds."""

    kind = "InsufficientBalance"


class TransferFailedError(LedgerError):
    """Raised when the token service reports a failed transfer."""

    kind = "TransferFailed"


class ReentrantCallError(LedgerError):
    """Raised when a guarded operation is entered while the guard is held."""

    kind = "ReentrantCall"


class LoanNotFoundError(LedgerError):
    """Raised when reading a loan for a borrower that never requested one."""

    kind = "LoanNotFound"


class InvalidLoanRequestError(LedgerError):
    """Raised when loan request parameters are malformed."""

    kind = "InvalidLoanRequest"


class InvalidAmountError(LedgerError):
    """Raised when a token amount is negative or not an integer."""

    kind = "InvalidAmount"


class TokenOperationError(LedgerError):
    """Raised when the token service rejects a mint or burn."""

    kind = "TokenOperation"
