"""Single-owner access control for privileged ledger operations."""

import logging
import threading

from microlend.models.base import normalize_address
from microlend.models.exceptions import NotOwnerError


logger = logging.getLogger(__name__)


class OwnershipGate:
    """Track the ledger owner and reject privileged calls from anyone else.

    Address comparison is case-insensitive so checksummed and lower-case
    forms of the same account are treated as one identity.
    """

    def __init__(self, owner: str) -> None:
        if not normalize_address(owner):
            raise ValueError("owner address must not be blank")
        self._owner = owner.strip()
        self._lock = threading.Lock()

    def current_owner(self) -> str:
        with self._lock:
            return self._owner

    def is_owner(self, caller: str) -> bool:
        return bool(normalize_address(caller)) and normalize_address(caller) == normalize_address(self.current_owner())

    def assert_owner(self, caller: str) -> None:
        """Fail closed with ``NotOwnerError`` unless ``caller`` is the owner."""
        if not self.is_owner(caller):
            logger.warning("Owner-only call rejected caller=%s", caller)
            raise NotOwnerError("Caller {0} is not the owner".format(caller))

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand ownership to ``new_owner``; only the current owner may do this."""
        self.assert_owner(caller)
        if not normalize_address(new_owner):
            raise ValueError("new owner address must not be blank")
        with self._lock:
            previous = self._owner
            self._owner = new_owner.strip()
        logger.info("Ownership transferred previous=%s new=%s", previous, new_owner)
        return self._owner
