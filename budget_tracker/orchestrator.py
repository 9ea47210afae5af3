"""
Main Orchestrator for the Budget Tracker

This module ties together all the components and defines the end-to-end
flows the HTTP layer calls:
1. Reads (date range, calendar month, monthly summary)
2. Mutations (create, partial update, delete)
3. Current-user profile

The orchestrator enforces the boundaries:
- Every operation is scoped by the owner identity
- Not-found never reveals whether another user owns the record
- Every write passes the business rules before it reaches storage
- Every step is audited

No retries happen here. Storage failures propagate as ``StorageError``.
"""

from datetime import date
from typing import Optional, Union
from uuid import UUID

import structlog

from budget_tracker.audit import AuditLogger, create_correlation_id
from budget_tracker.config import get_settings
from budget_tracker.models.transaction import (
    MonthlySummary,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    User,
    UserProfile,
)
from budget_tracker.queries import TransactionQueryExecutor
from budget_tracker.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
    TransactionStorageInterface,
    UserStorageInterface,
)
from budget_tracker.validation import TransactionValidator


logger = structlog.get_logger(__name__)


class TransactionNotFoundError(Exception):
    """
    The transaction doesn't exist for this user.

    Raised both when the id is unknown and when it belongs to someone else;
    callers must not be able to tell the two apart.
    """

    def __init__(self, transaction_id: str):
        super().__init__("Transaction not found")
        self.transaction_id = transaction_id


def _parse_transaction_id(raw: Union[str, UUID]) -> Optional[UUID]:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(raw)
    except (TypeError, ValueError):
        return None


class TransactionService:
    """
    Orchestrates every transaction operation for one owner identity at a time.

    Flow for writes:
    1. Schema validation (already done by the pydantic payload)
    2. Ownership lookup (update/delete) -> not-found
    3. Business rules -> validation error
    4. Single-row write
    5. Audit
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger
        self._queries = TransactionQueryExecutor(storage, audit_logger)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_by_date_range(
        self,
        user_id: str,
        start_date: date,
        end_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return await self._queries.by_date_range(user_id, start_date, end_date, correlation_id)

    async def list_by_month(
        self,
        user_id: str,
        year: int,
        month: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        return await self._queries.by_month(user_id, year, month, correlation_id)

    async def monthly_summary(
        self,
        user_id: str,
        year: int,
        month: int,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlySummary:
        return await self._queries.monthly_summary(user_id, year, month, correlation_id)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(
        self,
        user_id: str,
        payload: TransactionCreate,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and persist a new transaction.

        An income's category is discarded rather than rejected.

        Raises:
            TransactionValidationError: If the business rules fail
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._enforce(
            self._validator.validate_new(payload), user_id, "create", correlation_id
        )

        transaction = await self._storage.insert_transaction(
            Transaction.from_payload(user_id, payload)
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                user_id=user_id,
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
                correlation_id=correlation_id,
            )

        return transaction

    async def update(
        self,
        user_id: str,
        transaction_id: Union[str, UUID],
        payload: TransactionUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Merge a partial update onto a transaction the user owns.

        Raises:
            TransactionNotFoundError: If the user owns no such transaction
            TransactionValidationError: If the merged record breaks the rules
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._owned(user_id, transaction_id, "update", correlation_id)

        changes = payload.model_dump(exclude_unset=True)
        await self._enforce(
            self._validator.validate_merged(existing, changes), user_id, "update", correlation_id
        )

        stored = await self._storage.update_transaction(existing.merged_with(changes))
        if stored is None:
            # Deleted between the lookup and the write
            await self._not_found(user_id, str(transaction_id), "update", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                user_id=user_id,
                transaction_id=stored.id,
                changed_fields=sorted(changes),
                correlation_id=correlation_id,
            )

        return stored

    async def delete(
        self,
        user_id: str,
        transaction_id: Union[str, UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Hard-delete a transaction the user owns.

        Raises:
            TransactionNotFoundError: If nothing was deleted
        """
        correlation_id = correlation_id or create_correlation_id()

        parsed = _parse_transaction_id(transaction_id)
        deleted = parsed is not None and await self._storage.delete_transaction(parsed, user_id)
        if not deleted:
            await self._not_found(user_id, str(transaction_id), "delete", correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                user_id=user_id,
                transaction_id=parsed,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _owned(
        self,
        user_id: str,
        transaction_id: Union[str, UUID],
        operation: str,
        correlation_id: UUID,
    ) -> Transaction:
        parsed = _parse_transaction_id(transaction_id)
        existing = None
        if parsed is not None:
            existing = await self._storage.get_transaction(parsed, user_id)
        if existing is None:
            await self._not_found(user_id, str(transaction_id), operation, correlation_id)
        return existing

    async def _not_found(
        self,
        user_id: str,
        transaction_id: str,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_transaction_not_found(
                user_id=user_id,
                transaction_id=transaction_id,
                operation=operation,
                correlation_id=correlation_id,
            )
        raise TransactionNotFoundError(transaction_id)

    async def _enforce(self, result, user_id: str, operation: str, correlation_id: UUID) -> None:
        if result.is_valid:
            return
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                user_id=user_id,
                operation=operation,
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
        self._validator.ensure_valid(result)


class UserService:
    """Stores the profile the identity provider forwards."""

    def __init__(
        self,
        storage: UserStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def sync_profile(
        self,
        profile: UserProfile,
        correlation_id: Optional[UUID] = None,
    ) -> User:
        """Upsert the forwarded profile and return the stored user."""
        user = await self._storage.upsert_user(profile)
        if self._audit_logger:
            await self._audit_logger.log_user_upserted(
                user_id=user.id,
                correlation_id=correlation_id,
            )
        return user


def _build_storage(
    backend: str,
) -> tuple[TransactionStorageInterface, UserStorageInterface, AuditStorageInterface]:
    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            return (
                GoogleSheetsTransactionStorage(sheets_client),
                GoogleSheetsUserStorage(sheets_client),
                GoogleSheetsAuditStorage(sheets_client),
            )
        except Exception as e:
            # Storage not configured - continue with process-local storage
            logger.warning("storage_not_configured", backend=backend, error=str(e))

    return InMemoryTransactionStorage(), InMemoryUserStorage(), InMemoryAuditStorage()


def create_app_components(
    transaction_storage: Optional[TransactionStorageInterface] = None,
    user_storage: Optional[UserStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> tuple[TransactionService, UserService, AuditLogger]:
    """
    Factory function to create all application components.

    Storages passed in take precedence; the rest come from the configured
    backend. Tests pass in-memory storages directly.

    Returns:
        (transaction_service, user_service, audit_logger)
    """
    settings = get_settings().app

    if transaction_storage is None or user_storage is None or audit_storage is None:
        default_tx, default_users, default_audit = _build_storage(settings.storage_backend)
        if transaction_storage is None:
            transaction_storage = default_tx
        if user_storage is None:
            user_storage = default_users
        if audit_storage is None:
            audit_storage = default_audit

    audit_logger = AuditLogger(audit_storage)
    validator = TransactionValidator(settings.max_transaction_amount)

    transaction_service = TransactionService(
        storage=transaction_storage,
        validator=validator,
        audit_logger=audit_logger,
    )
    user_service = UserService(
        storage=user_storage,
        audit_logger=audit_logger,
    )

    return transaction_service, user_service, audit_logger
