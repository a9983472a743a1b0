"""
Error taxonomy.

Repository-level errors are caught where the dashboard calls the repository
and turned into one visible message. None of them reach the session resolver.
"""

from typing import Optional

from ledger.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class BackendError(LedgerError):
    """Network or auth failure reported by the backend gateway."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed input. Raised before anything is sent to the backend."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)


class AuthorizationError(LedgerError):
    """The current principal may not perform this operation."""

    def __init__(self, message: str, reason: str = "forbidden"):
        self.reason = reason
        super().__init__(message)


class MissingTargetUserError(ValidationError, AuthorizationError):
    """An admin tried to insert without choosing whose transaction it is."""

    def __init__(self, message: str = "Admin must select a user"):
        issue = ValidationIssue(
            field="target_user_id",
            issue_type="missing",
            message=message,
        )
        ValidationError.__init__(self, message, [issue])
        self.reason = "missing_target_user"
