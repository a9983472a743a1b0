"""Input validation package."""

from ledger.validation.validator import TransactionValidator, parse_amount, parse_date

__all__ = ["TransactionValidator", "parse_amount", "parse_date"]
