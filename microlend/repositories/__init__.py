"""Concrete repository implementations."""

from .memory_loan_repository import InMemoryLoanRepository

__all__ = ["InMemoryLoanRepository"]
