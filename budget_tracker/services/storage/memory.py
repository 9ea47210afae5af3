"""
In-Memory Storage Implementation

Process-local storage used for local development and tests. It follows the
same contract as the Google Sheets backend: owner-scoped reads and writes,
copies in and out so callers can't mutate stored rows.

Everything runs on one event loop and no method awaits in the middle of a
read-modify-write, so no locking is needed.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from budget_tracker.models.audit import AuditEvent
from budget_tracker.models.transaction import Transaction, User, UserProfile, utc_now
from budget_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    TransactionStorageInterface,
    UserStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in a dict keyed by id."""

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}

    async def list_transactions(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
    ) -> list[Transaction]:
        matches = [
            row.model_copy()
            for row in self._rows.values()
            if row.user_id == user_id and start_date <= row.date <= end_date
        ]
        matches.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return matches

    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> Optional[Transaction]:
        row = self._rows.get(transaction_id)
        if row is None or row.user_id != user_id:
            return None
        return row.model_copy()

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._rows:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._rows[transaction.id] = transaction.model_copy()
        return transaction.model_copy()

    async def update_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        existing = self._rows.get(transaction.id)
        if existing is None or existing.user_id != transaction.user_id:
            return None
        self._rows[transaction.id] = transaction.model_copy()
        return transaction.model_copy()

    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> bool:
        existing = self._rows.get(transaction_id)
        if existing is None or existing.user_id != user_id:
            return False
        del self._rows[transaction_id]
        return True


class InMemoryUserStorage(UserStorageInterface):
    """User profiles kept in a dict keyed by id."""

    def __init__(self):
        self._users: dict[str, User] = {}

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def upsert_user(self, profile: UserProfile) -> User:
        existing = self._users.get(profile.id)
        if existing is None:
            user = User(**profile.model_dump())
        else:
            user = existing.model_copy(
                update={**profile.model_dump(), "updated_at": utc_now()}
            )
        self._users[user.id] = user
        return user.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_for_user(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.user_id == user_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
