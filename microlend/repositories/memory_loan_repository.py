"""In-memory implementation of the loan repository."""

import logging
import threading
from typing import Dict, List, Optional

from microlend.models.base import normalize_address
from microlend.models.exceptions import ModelNotFoundError, VersionConflictError
from microlend.models.loans import LoanModel
from microlend.models.repositories import LoanRepository


logger = logging.getLogger(__name__)


class InMemoryLoanRepository(LoanRepository):
    """Keep loans in a process-local map keyed by normalized borrower address.

    Stored records are private copies, so a caller holding a model cannot
    change persisted state without going through ``update``.
    """

    def __init__(self) -> None:
        self._loans: Dict[str, LoanModel] = {}
        self._history: Dict[str, List[LoanModel]] = {}
        self._lock = threading.RLock()

    def create(self, model: LoanModel) -> LoanModel:
        key = model.borrower_key
        with self._lock:
            current = self._loans.get(key)
            if current is not None:
                if current.active:
                    raise VersionConflictError("Active loan already stored for borrower={0}".format(key))
                self._history.setdefault(key, []).append(current)
            self._loans[key] = model.model_copy(deep=True)
            logger.debug("Stored loan borrower=%s version=%s", key, model.version)
            return model.model_copy(deep=True)

    def get_by_id(self, model_id: str) -> LoanModel:
        loan = self.find(model_id)
        if loan is None:
            raise ModelNotFoundError("Loan not found: {0}".format(model_id))
        return loan

    def find(self, model_id: str) -> Optional[LoanModel]:
        with self._lock:
            loan = self._loans.get(normalize_address(model_id))
            return loan.model_copy(deep=True) if loan is not None else None

    def update(self, model: LoanModel) -> LoanModel:
        key = model.borrower_key
        with self._lock:
            current = self._loans.get(key)
            if current is None:
                raise ModelNotFoundError("Loan not found: {0}".format(model.borrower))
            if model.version <= current.version:
                raise VersionConflictError(
                    "Version conflict for borrower={0} stored={1} incoming={2}".format(
                        key, current.version, model.version
                    )
                )
            self._loans[key] = model.model_copy(deep=True)
            logger.debug("Updated loan borrower=%s version=%s", key, model.version)
            return model.model_copy(deep=True)

    def get_active_loans(self) -> List[LoanModel]:
        with self._lock:
            return [loan.model_copy(deep=True) for loan in self._loans.values() if loan.active]

    def list_loans(self) -> List[LoanModel]:
        with self._lock:
            return [loan.model_copy(deep=True) for loan in self._loans.values()]

    def get_history(self, model_id: str) -> List[LoanModel]:
        with self._lock:
            return [loan.model_copy(deep=True) for loan in self._history.get(normalize_address(model_id), [])]
