"""Query execution package."""

from budget_tracker.queries.executor import TransactionQueryExecutor
from budget_tracker.queries.summary import (
    InvalidPeriodError,
    check_date_range,
    month_range,
    summarize_transactions,
)

__all__ = [
    "InvalidPeriodError",
    "TransactionQueryExecutor",
    "check_date_range",
    "month_range",
    "summarize_transactions",
]
