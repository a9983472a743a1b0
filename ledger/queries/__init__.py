"""Filter and aggregation package."""

from ledger.queries.filters import (
    apply_filters,
    describe_criteria,
    filter_transactions,
    matches_substring,
    total_amount,
    within_dates,
)

__all__ = [
    "apply_filters",
    "describe_criteria",
    "filter_transactions",
    "matches_substring",
    "total_amount",
    "within_dates",
]
