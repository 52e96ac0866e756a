"""Credit-scored micro-lending ledger."""

__version__ = "0.1.0"
