"""
Audit Models for Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of who changed which rows
2. Debugging information when the backend misbehaves
3. A record of every client-side rejection

DESIGN DECISION: Audit events are write-once. Nothing edits them after creation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_RESOLVED = "session_resolved"
    CLASSIFICATION_FAILED = "classification_failed"
    SIGNED_OUT = "signed_out"
    SIGNUP_REQUESTED = "signup_requested"
    SIGNUP_REJECTED = "signup_rejected"

    # Transactions
    TRANSACTIONS_LISTED = "transactions_listed"
    LIST_FAILED = "list_failed"
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"
    DELETE_AFFECTED_NO_ROWS = "delete_affected_no_rows"

    # Client-side rejections
    OPERATION_REJECTED = "operation_rejected"

    # System events
    BACKEND_ERROR = "backend_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    actor_id: Optional[str] = Field(
        default=None,
        description="User id of the principal acting, if any"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., insert + re-fetch)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(tx_id, owner_id, actor_id, amount, cid)
        event = AuditEventBuilder.operation_rejected("insert", "unverified", actor_id, msg, cid)
    """

    @staticmethod
    def session_resolved(
        user_id: Optional[str],
        state: str,
        sequence: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_RESOLVED,
            actor_id=user_id,
            entity_type="session",
            description=f"Session resolved to {state}",
            details={
                "state": state,
                "sequence": sequence,
            },
        )

    @staticmethod
    def classification_failed(
        user_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLASSIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=user_id,
            entity_type="profile",
            entity_id=user_id,
            description="Profile lookup failed, treating user as unverified",
            error_message=error_message,
        )

    @staticmethod
    def signed_out(
        user_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            actor_id=user_id,
            entity_type="session",
            correlation_id=correlation_id,
            description="User signed out",
            is_user_action=True,
        )

    @staticmethod
    def signup_requested(
        email: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNUP_REQUESTED,
            entity_type="profile",
            correlation_id=correlation_id,
            description="Signup requested, verification email pending",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def signup_rejected(
        email: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNUP_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="profile",
            correlation_id=correlation_id,
            description=f"Signup rejected: {reason}",
            details={"email": email, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def transactions_listed(
        actor_id: Optional[str],
        scope: str,
        result_count: int,
        skipped_rows: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_LISTED,
            severity=AuditSeverity.WARNING if skipped_rows else AuditSeverity.INFO,
            actor_id=actor_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Listed {result_count} transactions ({scope})",
            details={
                "scope": scope,
                "result_count": result_count,
                "skipped_rows": skipped_rows,
            },
        )

    @staticmethod
    def list_failed(
        actor_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIST_FAILED,
            severity=AuditSeverity.ERROR,
            actor_id=actor_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description="Listing transactions failed",
            error_message=error_message,
        )

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        owner_id: str,
        actor_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            actor_id=actor_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {amount}",
            details={
                "owner_id": owner_id,
                "amount": amount,
                "on_behalf": owner_id != actor_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        actor_id: str,
        rows_affected: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        if rows_affected == 0:
            return AuditEvent(
                event_type=AuditEventType.DELETE_AFFECTED_NO_ROWS,
                actor_id=actor_id,
                entity_type="transaction",
                entity_id=transaction_id,
                correlation_id=correlation_id,
                description="Delete matched no rows (missing or not owned)",
                details={"rows_affected": 0},
                is_user_action=True,
            )
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            actor_id=actor_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={"rows_affected": rows_affected},
            is_user_action=True,
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        reason: str,
        actor_id: Optional[str],
        message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} rejected before reaching the backend: {reason}",
            details={
                "operation": operation,
                "reason": reason,
            },
            error_message=message,
            is_user_action=True,
        )

    @staticmethod
    def backend_error(
        operation: str,
        error_message: str,
        actor_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKEND_ERROR,
            severity=AuditSeverity.ERROR,
            actor_id=actor_id,
            description=f"Backend error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
