"""Transaction repository package."""

from ledger.repository.transactions import TransactionRepository, scope_for

__all__ = ["TransactionRepository", "scope_for"]
