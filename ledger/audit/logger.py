"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of every write and every client-side rejection
2. Debugging capability when the backend misbehaves
3. A short in-memory history the dashboard can show

The audit logger:
- Never raises (logging must not break a user operation)
- Supports correlation IDs to trace related events (insert + re-fetch)
"""

import logging
from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=log_level.upper())
    logging.getLogger("ledger").setLevel(log_level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and keeps the most recent
    ones in memory.
    """

    def __init__(self, history_size: int = 200):
        self._logger = structlog.get_logger("ledger.audit")
        self._history: deque[AuditEvent] = deque(maxlen=history_size)

    @property
    def history(self) -> list[AuditEvent]:
        """Recent events, oldest first."""
        return list(self._history)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity.value == "error":
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # A broken log handler must not fail the operation being audited
            logging.getLogger("ledger.audit").warning("audit log write failed: %s", e)

    def log_session_resolved(
        self,
        user_id: Optional[str],
        state: str,
        sequence: int,
    ) -> None:
        self.log(AuditEventBuilder.session_resolved(
            user_id=user_id,
            state=state,
            sequence=sequence,
        ))

    def log_classification_failed(self, user_id: str, error_message: str) -> None:
        self.log(AuditEventBuilder.classification_failed(
            user_id=user_id,
            error_message=error_message,
        ))

    def log_signed_out(self, user_id: Optional[str], correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.signed_out(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    def log_signup_requested(self, email: str, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.signup_requested(
            email=email,
            correlation_id=correlation_id,
        ))

    def log_signup_rejected(self, email: str, reason: str, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.signup_rejected(
            email=email,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_transactions_listed(
        self,
        actor_id: Optional[str],
        scope: str,
        result_count: int,
        skipped_rows: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transactions_listed(
            actor_id=actor_id,
            scope=scope,
            result_count=result_count,
            skipped_rows=skipped_rows,
            correlation_id=correlation_id,
        ))

    def log_list_failed(
        self,
        actor_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.list_failed(
            actor_id=actor_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_transaction_saved(
        self,
        transaction_id: str,
        owner_id: str,
        actor_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            owner_id=owner_id,
            actor_id=actor_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(
        self,
        transaction_id: str,
        actor_id: str,
        rows_affected: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            actor_id=actor_id,
            rows_affected=rows_affected,
            correlation_id=correlation_id,
        ))

    def log_operation_rejected(
        self,
        operation: str,
        reason: str,
        actor_id: Optional[str],
        message: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            reason=reason,
            actor_id=actor_id,
            message=message,
            correlation_id=correlation_id,
        ))

    def log_backend_error(
        self,
        operation: str,
        error_message: str,
        actor_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.backend_error(
            operation=operation,
            error_message=error_message,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
