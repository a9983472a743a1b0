"""
Data Models Package

This package contains all Pydantic models used in the Ledger system.
All data flowing through the system must conform to these schemas.
"""

from ledger.models.ledger import (
    ApplicationState,
    Classification,
    FilterCriteria,
    FilterResult,
    NewTransaction,
    Profile,
    ResolvedSession,
    Role,
    Scope,
    Session,
    Transaction,
    TransactionListResult,
    ValidationIssue,
    ValidationResult,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ApplicationState",
    "Classification",
    "FilterCriteria",
    "FilterResult",
    "NewTransaction",
    "Profile",
    "ResolvedSession",
    "Role",
    "Scope",
    "Session",
    "Transaction",
    "TransactionListResult",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
