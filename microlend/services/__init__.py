"""Service layer exports."""

from .access_control import OwnershipGate
from .clock import Clock, ManualClock, SystemClock
from .event_log import EventLog
from .liquidation_poller import LiquidationPoller
from .loan_ledger import LoanLedger
from .reentrancy_guard import ReentrancyGuard
from .token_service import LedgerTokenAccount, ManagedToken, TokenService
from .web3_token_service import Web3TokenService

__all__ = [
    "Clock",
    "EventLog",
    "LedgerTokenAccount",
    "LiquidationPoller",
    "LoanLedger",
    "ManagedToken",
    "ManualClock",
    "OwnershipGate",
    "ReentrancyGuard",
    "SystemClock",
    "TokenService",
    "Web3TokenService",
]
