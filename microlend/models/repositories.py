"""Repository interfaces for datastore-agnostic loan access."""

from abc import ABC, abstractmethod
from typing import List, Optional

from .exceptions import ModelNotFoundError, VersionConflictError
from .loans import LoanModel


class BaseRepository(ABC):
    """Common contract for create/read/update operations."""

    @abstractmethod
    def create(self, model):
        """Persist a new model."""

    @abstractmethod
    def get_by_id(self, model_id: str):
        """Return model by identifier."""

    @abstractmethod
    def update(self, model):
        """Update existing model with optimistic version check."""


class LoanRepository(BaseRepository):
    """Loan data access abstraction keyed by borrower address."""

    @abstractmethod
    def create(self, model: LoanModel) -> LoanModel:
        """Persist a new current loan for the borrower.

        An inactive previous loan is moved to the borrower's history.

        Raises:
            VersionConflictError: If the borrower's current loan is still active.
        """

    @abstractmethod
    def get_by_id(self, model_id: str) -> LoanModel:
        """Fetch the current loan for a borrower address.

        Raises:
            ModelNotFoundError: If the borrower has no loan.
        """

    @abstractmethod
    def find(self, model_id: str) -> Optional[LoanModel]:
        """Fetch the current loan for a borrower address, or ``None``."""

    @abstractmethod
    def update(self, model: LoanModel) -> LoanModel:
        """Replace the current loan.

        Raises:
            ModelNotFoundError: If the borrower has no loan.
            VersionConflictError: If ``model.version`` is not newer than the stored one.
        """

    @abstractmethod
    def get_active_loans(self) -> List[LoanModel]:
        """Return current loans that are still active."""

    @abstractmethod
    def list_loans(self) -> List[LoanModel]:
        """Return every borrower's current loan."""

    @abstractmethod
    def get_history(self, model_id: str) -> List[LoanModel]:
        """Return superseded loans for a borrower, oldest first."""


__all__ = [
    "BaseRepository",
    "LoanRepository",
    "ModelNotFoundError",
    "VersionConflictError",
]
