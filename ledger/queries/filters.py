"""
Filter / Aggregation Engine

DESIGN DECISION: Filtering is a pure, synchronous function of
(transactions, criteria). It runs on every criteria change and every
refresh, holds no state and caches nothing, so the same inputs always
give the same output.

Amounts are already Decimals (parsed once at the repository boundary),
so the total is a plain numeric sum.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ledger.models.ledger import FilterCriteria, FilterResult, Transaction


def matches_substring(value: Optional[str], needle: str) -> bool:
    """
    Case-insensitive substring match.

    An empty needle matches everything, including a missing value.
    A missing value never matches a non-empty needle.
    """
    if not needle:
        return True
    if value is None:
        return False
    return needle.casefold() in value.casefold()


def within_dates(
    transaction_date: date,
    start_date: Optional[date],
    end_date: Optional[date],
) -> bool:
    """Both bounds inclusive; an absent bound imposes nothing."""
    if start_date and transaction_date < start_date:
        return False
    if end_date and transaction_date > end_date:
        return False
    return True


def apply_filters(
    transactions: Iterable[Transaction],
    criteria: FilterCriteria,
) -> list[Transaction]:
    """Keep the transactions matching every criterion, in input order."""
    return [
        t for t in transactions
        if matches_substring(t.description, criteria.description_substring)
        and matches_substring(t.project, criteria.project_substring)
        and within_dates(t.transaction_date, criteria.start_date, criteria.end_date)
    ]


def total_amount(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of amounts; Decimal("0") for an empty set."""
    return sum((t.amount for t in transactions), Decimal("0"))


def filter_transactions(
    transactions: Iterable[Transaction],
    criteria: Optional[FilterCriteria] = None,
) -> FilterResult:
    """Filter, then aggregate."""
    criteria = criteria or FilterCriteria()
    filtered = apply_filters(transactions, criteria)
    return FilterResult(
        transactions=filtered,
        total=total_amount(filtered),
        count=len(filtered),
        description=describe_criteria(criteria),
    )


def describe_criteria(criteria: FilterCriteria) -> str:
    """Human-readable summary of the active filters."""
    if criteria.is_empty:
        return "All transactions"

    desc_parts = ["Transactions"]
    if criteria.description_substring:
        desc_parts.append(f"matching '{criteria.description_substring}'")
    if criteria.project_substring:
        desc_parts.append(f"in project '{criteria.project_substring}'")
    if criteria.start_date or criteria.end_date:
        desc_parts.append(_date_range_str(criteria.start_date, criteria.end_date))
    return " ".join(desc_parts)


def _date_range_str(
    date_from: Optional[date],
    date_to: Optional[date],
) -> str:
    """Format date range for description."""
    if date_from and date_to:
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        elif date_from > date_to:
            return "in an empty date range"
        elif date_from.month == date_to.month and date_from.year == date_to.year:
            return f"from {date_from.day} to {date_to.strftime('%d %b %Y')}"
        elif date_from.year == date_to.year:
            return f"from {date_from.strftime('%d %b')} to {date_to.strftime('%d %b %Y')}"
        else:
            return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
    elif date_from:
        return f"from {date_from.strftime('%d %b %Y')}"
    elif date_to:
        return f"until {date_to.strftime('%d %b %Y')}"
    return ""
