"""
Month Resolution and Summary Aggregation

Pure functions, no I/O:
- ``month_range`` turns (year, month) into the inclusive calendar range of
  that month, using the month's real length (28-31 days).
- ``summarize_transactions`` folds a month of transactions into a
  ``MonthlySummary`` with exact Decimal arithmetic.
"""

import calendar
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from budget_tracker.models.transaction import (
    CategoryTotal,
    ExpenseCategory,
    MonthlySummary,
    Transaction,
    TransactionType,
    quantize_amount,
)


MIN_YEAR = 1000
MAX_YEAR = 9999


class InvalidPeriodError(ValueError):
    """A year/month or date range that cannot be resolved."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def month_range(year: int, month: int) -> tuple[date, date]:
    """
    Calculate the inclusive date range covering a month.

    Args:
        year: Four-digit year
        month: Month number, 1-12

    Returns:
        (first_day, last_day); e.g. (2023-02-01, 2023-02-28)

    Raises:
        InvalidPeriodError: If year or month is out of range
    """
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriodError("year", f"Year must be a 4-digit year, got {year}")
    if not 1 <= month <= 12:
        raise InvalidPeriodError("month", f"Month must be between 1 and 12, got {month}")

    _, days_in_month = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, days_in_month)


def check_date_range(start_date: date, end_date: date) -> None:
    """Reject an inverted range."""
    if start_date > end_date:
        raise InvalidPeriodError(
            "startDate",
            f"Start date {start_date.isoformat()} is after end date {end_date.isoformat()}",
        )


def summarize_transactions(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
) -> MonthlySummary:
    """
    Aggregate a month of transactions.

    - total_income: sum of income amounts
    - total_expenses: sum of expense amounts
    - balance: total_income - total_expenses (may be negative)
    - category_breakdown: per expense category present, the sum of its
      amounts, largest first. Categories without expenses are omitted.

    The caller is responsible for passing only that month's transactions.
    """
    total_income = Decimal("0")
    total_expenses = Decimal("0")
    by_category: dict[ExpenseCategory, Decimal] = defaultdict(Decimal)

    for transaction in transactions:
        if transaction.type == TransactionType.INCOME:
            total_income += transaction.amount
        else:
            total_expenses += transaction.amount
            if transaction.category is not None:
                by_category[transaction.category] += transaction.amount

    breakdown = [
        CategoryTotal(category=category, amount=quantize_amount(amount))
        for category, amount in by_category.items()
    ]
    breakdown.sort(key=lambda entry: (-entry.amount, entry.category.value))

    return MonthlySummary(
        year=year,
        month=month,
        total_income=quantize_amount(total_income),
        total_expenses=quantize_amount(total_expenses),
        balance=quantize_amount(total_income - total_expenses),
        category_breakdown=breakdown,
    )
