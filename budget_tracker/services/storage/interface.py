"""
Abstract Storage Interface

We define an abstract interface for storage operations. This allows us to:
1. Use Google Sheets today and a real database later
2. Use in-memory storage for tests and local development
3. Keep business logic decoupled from storage implementation

The interface is intentionally small: filtered select, insert, update
returning the row, and delete reporting whether a row went away. Every
transaction operation takes the owner identity; implementations must never
return or touch a row owned by someone else.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from budget_tracker.models.audit import AuditEvent
from budget_tracker.models.transaction import Transaction, User, UserProfile


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
    ) -> list[Transaction]:
        """
        List a user's transactions dated within an inclusive range.

        Args:
            user_id: Owner identity
            start_date: First date included
            end_date: Last date included

        Returns:
            Matching transactions, most recently created first; equal
            creation times are ordered by id, descending
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> Optional[Transaction]:
        """
        Retrieve one transaction owned by ``user_id``.

        Returns:
            The transaction, or None if it doesn't exist or belongs to
            another user
        """
        pass

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Returns:
            The stored row

        Raises:
            DuplicateError: If the id is already taken
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        """
        Replace a stored transaction, matched on id AND owner.

        Returns:
            The stored row, or None if no row matched
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: UUID,
        user_id: str,
    ) -> bool:
        """
        Hard-delete a transaction, matched on id AND owner.

        Returns:
            True if a row was deleted
        """
        pass


class UserStorageInterface(ABC):
    """Abstract interface for user profile storage."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by id, or None."""
        pass

    @abstractmethod
    async def upsert_user(self, profile: UserProfile) -> User:
        """
        Insert a user, or update the profile fields of an existing one.

        ``created_at`` survives an update; ``updated_at`` is refreshed.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for one request, in chronological order."""
        pass

    @abstractmethod
    async def get_events_for_user(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get a user's most recent events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
