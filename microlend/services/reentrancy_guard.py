"""Reentrancy guard held while the ledger calls into the token service."""

from contextlib import contextmanager
import logging
from typing import Iterator

from microlend.models.exceptions import ReentrantCallError


logger = logging.getLogger(__name__)


class ReentrancyGuard:
    """Exclusive advisory flag around calls that run untrusted external code.

    The ledger lock serializes callers, but it is re-entrant for the thread
    that holds it. A token implementation calling back into the ledger from
    inside ``mint`` or ``burn`` would pass the lock; this guard stops it.
    """

    def __init__(self) -> None:
        self._held = False
        self._holder = ""

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self, operation: str = "") -> None:
        if self._held:
            logger.warning("Reentrant call rejected operation=%s holder=%s", operation, self._holder)
            raise ReentrantCallError(
                "Reentrant call to {0} while {1} is in progress".format(operation or "ledger", self._holder or "ledger")
            )
        self._held = True
        self._holder = operation

    def release(self) -> None:
        self._held = False
        self._holder = ""

    @contextmanager
    def guarded(self, operation: str = "") -> Iterator[None]:
        """Hold the guard for the duration of the ``with`` block."""
        self.acquire(operation)
        try:
            yield
        finally:
            self.release()
