"""Services package."""

from budget_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsUserStorage",
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserStorage",
    "StorageError",
    "TransactionStorageInterface",
    "UserStorageInterface",
]
