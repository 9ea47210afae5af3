"""
Audit Models for the Budget Tracker

Every mutation and every read of a user's money data is recorded as an
audit event. Events go to the structured log and, when audit storage is
configured, to persistent storage.

Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_tracker.models.transaction import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Mutations
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_NOT_FOUND = "transaction_not_found"
    VALIDATION_FAILED = "validation_failed"

    # Reads
    RANGE_QUERY_EXECUTED = "range_query_executed"
    MONTH_QUERY_EXECUTED = "month_query_executed"
    SUMMARY_COMPUTED = "summary_computed"

    # Identity
    USER_UPSERTED = "user_upserted"
    SESSION_REJECTED = "session_rejected"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    ``user_id`` is the owner identity the action was performed for. It is
    None only for events raised before an identity was established.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'summary', 'user')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events raised while serving one request"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction, correlation_id)
        event = AuditEventBuilder.summary_computed(user_id, 2024, 1, ...)
    """

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"Transaction created: {transaction_type} {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
            },
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
            },
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: UUID,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def transaction_not_found(
        user_id: str,
        transaction_id: str,
        operation: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} rejected: transaction not found",
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} validation failed with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def range_query_executed(
        user_id: str,
        start_date: str,
        end_date: str,
        result_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RANGE_QUERY_EXECUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Range query {start_date}..{end_date} returned {result_count} results",
            details={
                "start_date": start_date,
                "end_date": end_date,
                "result_count": result_count,
            },
        )

    @staticmethod
    def month_query_executed(
        user_id: str,
        year: int,
        month: int,
        result_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_QUERY_EXECUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Month query {year:04d}-{month:02d} returned {result_count} results",
            details={
                "year": year,
                "month": month,
                "result_count": result_count,
            },
        )

    @staticmethod
    def summary_computed(
        user_id: str,
        year: int,
        month: int,
        transaction_count: int,
        balance: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_COMPUTED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="summary",
            entity_id=f"{year:04d}-{month:02d}",
            correlation_id=correlation_id,
            description=f"Summary computed over {transaction_count} transactions",
            details={
                "transaction_count": transaction_count,
                "balance": balance,
            },
        )

    @staticmethod
    def user_upserted(
        user_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_UPSERTED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="User profile stored",
        )

    @staticmethod
    def session_rejected(
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Request rejected: no authenticated identity",
            details={
                "reason": reason,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
