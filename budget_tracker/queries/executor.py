"""
Query Execution Engine

Read-side operations over a user's transactions: the inclusive date-range
query, the calendar-month query built on it, and the monthly summary built
on the month query.

Every query is scoped by the owner identity. There is no way to ask this
engine for another user's rows.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from budget_tracker.audit import AuditLogger
from budget_tracker.models.transaction import MonthlySummary, Transaction
from budget_tracker.queries.summary import (
    check_date_range,
    month_range,
    summarize_transactions,
)
from budget_tracker.services.storage import TransactionStorageInterface


class TransactionQueryExecutor:
    """
    Executes read queries against transaction storage.

    GUARANTEES:
    - Only returns rows owned by the requesting user
    - Month queries use the month's real last day
    - Summaries are recomputed from storage on every call
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def by_date_range(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Transactions dated within [start_date, end_date], newest-created first.

        Raises:
            InvalidPeriodError: If start_date is after end_date
        """
        check_date_range(start_date, end_date)
        transactions = await self._storage.list_transactions(user_id, start_date, end_date)

        if self._audit_logger:
            await self._audit_logger.log_range_query(
                user_id=user_id,
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat(),
                result_count=len(transactions),
                correlation_id=correlation_id,
            )

        return transactions

    async def by_month(
        self,
        user_id: str,
        year: int,
        month: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Transactions dated within one calendar month.

        Raises:
            InvalidPeriodError: If year or month is out of range
        """
        first_day, last_day = month_range(year, month)
        transactions = await self._storage.list_transactions(user_id, first_day, last_day)

        if self._audit_logger:
            await self._audit_logger.log_month_query(
                user_id=user_id,
                year=year,
                month=month,
                result_count=len(transactions),
                correlation_id=correlation_id,
            )

        return transactions

    async def monthly_summary(
        self,
        user_id: str,
        year: int,
        month: int,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlySummary:
        """Totals and category breakdown for one calendar month."""
        transactions = await self.by_month(user_id, year, month, correlation_id)
        summary = summarize_transactions(transactions, year, month)

        if self._audit_logger:
            await self._audit_logger.log_summary_computed(
                user_id=user_id,
                year=year,
                month=month,
                transaction_count=len(transactions),
                balance=str(summary.balance),
                correlation_id=correlation_id,
            )

        return summary
