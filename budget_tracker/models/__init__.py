"""
Data Models Package

This package contains all Pydantic models used in the Budget Tracker.
All data flowing through the system must conform to these schemas.
"""

from budget_tracker.models.transaction import (
    CategoryTotal,
    ExpenseCategory,
    MonthlySummary,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    User,
    UserProfile,
    ValidationIssue,
    ValidationResult,
)
from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "CategoryTotal",
    "ExpenseCategory",
    "MonthlySummary",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "TransactionUpdate",
    "User",
    "UserProfile",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
