"""Managed fungible token and the ledger-bound token service interface."""

import logging
import threading
from typing import Dict, Protocol

from microlend.models.base import normalize_address
from microlend.models.exceptions import InvalidAmountError, TokenOperationError


logger = logging.getLogger(__name__)


class TokenService(Protocol):
    """Token operations the ledger consumes.

    ``transfer`` moves tokens out of the ledger's own holdings and reports
    failure through its return value instead of raising. ``ledger_address``
    is the account those holdings live in.
    """

    @property
    def ledger_address(self) -> str:
        ...

    def mint(self, to: str, amount: int) -> None:
        ...

    def burn(self, from_address: str, amount: int) -> None:
        ...

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, to: str, amount: int) -> bool:
        ...


def require_token_amount(amount: int) -> None:
    """Reject negative or non-integer token amounts."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmountError("Token amount must be a non-negative integer, got {0!r}".format(amount))


class ManagedToken:
    """In-memory fungible token whose supply is controlled by a single minter."""

    def __init__(self, name: str, symbol: str, decimals: int, minter: str) -> None:
        if not normalize_address(minter):
            raise ValueError("minter address must not be blank")
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self._minter = normalize_address(minter)
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._lock = threading.RLock()

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    def _require_minter(self, caller: str) -> None:
        if normalize_address(caller) != self._minter:
            logger.warning("Token supply change rejected caller=%s symbol=%s", caller, self.symbol)
            raise TokenOperationError("Caller {0} may not change {1} supply".format(caller, self.symbol))

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(account), 0)

    def mint(self, caller: str, to: str, amount: int) -> None:
        self._require_minter(caller)
        require_token_amount(amount)
        key = normalize_address(to)
        if not key:
            raise TokenOperationError("Cannot mint to a blank address")
        with self._lock:
            self._balances[key] = self._balances.get(key, 0) + amount
            self._total_supply += amount
        logger.debug("Minted %s %s to=%s", amount, self.symbol, to)

    def burn(self, caller: str, from_address: str, amount: int) -> None:
        self._require_minter(caller)
        require_token_amount(amount)
        key = normalize_address(from_address)
        with self._lock:
            balance = self._balances.get(key, 0)
            if balance < amount:
                raise TokenOperationError(
                    "Burn amount {0} exceeds balance {1} of {2}".format(amount, balance, from_address)
                )
            self._balances[key] = balance - amount
            self._total_supply -= amount
        logger.debug("Burned %s %s from=%s", amount, self.symbol, from_address)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        """Move tokens between accounts; returns False when the sender is short."""
        require_token_amount(amount)
        sender_key = normalize_address(sender)
        to_key = normalize_address(to)
        if not to_key:
            logger.warning("Transfer to blank address rejected sender=%s", sender)
            return False
        with self._lock:
            balance = self._balances.get(sender_key, 0)
            if balance < amount:
                logger.warning("Transfer rejected sender=%s balance=%s amount=%s", sender, balance, amount)
                return False
            self._balances[sender_key] = balance - amount
            self._balances[to_key] = self._balances.get(to_key, 0) + amount
        logger.debug("Transferred %s %s from=%s to=%s", amount, self.symbol, sender, to)
        return True


class LedgerTokenAccount:
    """Bind a ``ManagedToken`` to the ledger's address as minter and holder."""

    def __init__(self, token: ManagedToken, ledger_address: str) -> None:
        self._token = token
        self._ledger_address = ledger_address

    @property
    def token(self) -> ManagedToken:
        return self._token

    @property
    def ledger_address(self) -> str:
        return self._ledger_address

    def mint(self, to: str, amount: int) -> None:
        self._token.mint(self._ledger_address, to, amount)

    def burn(self, from_address: str, amount: int) -> None:
        self._token.burn(self._ledger_address, from_address, amount)

    def balance_of(self, account: str) -> int:
        return self._token.balance_of(account)

    def transfer(self, to: str, amount: int) -> bool:
        return self._token.transfer(self._ledger_address, to, amount)
