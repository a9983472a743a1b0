"""
Tests for Ledger

Test strategy:
1. Unit tests for individual components (models, validators, filters)
2. Integration tests for flows (with the in-memory backend)
3. No real backend calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from ledger.models.ledger import (
    ApplicationState,
    FilterCriteria,
    NewTransaction,
    Profile,
    ResolvedSession,
    Role,
    Scope,
    Session,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from tests.conftest import make_row


class TestSessionModels:
    """Tests for session and profile models."""

    def test_profile_role_admin_case_insensitive(self):
        """Test that ' Admin ' is read as the admin role."""
        profile = Profile(id="u1", email="a@example.com", role=" Admin ")
        assert profile.role == Role.ADMIN

    def test_profile_unknown_role_is_user(self):
        """Test that unknown, empty or null roles fall back to user."""
        for raw in ("superuser", "", None):
            assert Profile(id="u1", role=raw).role == Role.USER

    def test_profile_requires_id(self):
        """Test that a profile without an id is rejected."""
        with pytest.raises(PydanticValidationError):
            Profile(id="", email="a@example.com")

    def test_resolved_session_defaults_to_loading(self):
        """Test the initial snapshot."""
        snapshot = ResolvedSession()
        assert snapshot.state == ApplicationState.LOADING
        assert snapshot.user_id is None
        assert snapshot.verified is False

    def test_resolved_session_exposes_principal(self):
        """Test user_id/email passthrough."""
        snapshot = ResolvedSession(
            state=ApplicationState.AUTHENTICATED_ADMIN,
            session=Session(user_id="u1", email="a@example.com"),
        )
        assert snapshot.user_id == "u1"
        assert snapshot.email == "a@example.com"
        assert snapshot.is_admin is True

    def test_state_predicates(self):
        """Test the ApplicationState helper properties."""
        assert not ApplicationState.LOADING.is_authenticated
        assert not ApplicationState.UNAUTHENTICATED.is_authenticated
        assert ApplicationState.AUTHENTICATED_UNVERIFIED.is_authenticated
        assert not ApplicationState.AUTHENTICATED_UNVERIFIED.is_verified
        assert ApplicationState.AUTHENTICATED_USER.is_verified
        assert not ApplicationState.AUTHENTICATED_USER.is_admin
        assert ApplicationState.AUTHENTICATED_ADMIN.is_admin


class TestTransactionModels:
    """Tests for transaction models."""

    def test_from_row_reads_joined_email(self):
        """Test that the owner's email comes from the joined relation."""
        row = make_row("t1", "u1", amount="12.34")
        row["profiles"] = {"email": "owner@example.com"}
        transaction = Transaction.from_row(row)
        assert transaction.owner_id == "u1"
        assert transaction.owner_email == "owner@example.com"
        assert transaction.amount == Decimal("12.34")
        assert transaction.transaction_date == date(2024, 1, 15)

    def test_from_row_accepts_user_relation_list(self):
        """Test the alternate ``user`` relation shape."""
        row = make_row("t1", "u1")
        row["user"] = [{"email": "owner@example.com"}]
        assert Transaction.from_row(row).owner_email == "owner@example.com"

    def test_from_row_float_amount_keeps_precision(self):
        """Test that float amounts go through str."""
        row = make_row("t1", "u1")
        row["amount"] = 10.1
        assert Transaction.from_row(row).amount == Decimal("10.1")

    def test_from_row_stringifies_numeric_id(self):
        """Test integer primary keys."""
        row = make_row("t1", "u1")
        row["id"] = 17
        assert Transaction.from_row(row).id == "17"

    def test_from_row_rejects_missing_owner(self):
        """Test that a row without user_id is malformed."""
        row = make_row("t1", "u1")
        row["user_id"] = None
        with pytest.raises(PydanticValidationError):
            Transaction.from_row(row)

    def test_from_row_rejects_non_numeric_amount(self):
        """Test that a garbage amount is malformed."""
        row = make_row("t1", "u1", amount="twelve")
        with pytest.raises(PydanticValidationError):
            Transaction.from_row(row)

    def test_new_transaction_to_row(self):
        """Test conversion to backend columns."""
        payload = NewTransaction(
            transaction_date=date(2024, 4, 1),
            recipient="  Landlord  ",
            amount=Decimal("42.10"),
            creditor="Me",
            bank="First Bank",
            description="   ",
            owner_id="u1",
        )
        row = payload.to_row()
        assert row["transaction_date"] == "2024-04-01"
        assert row["recipient"] == "Landlord"
        assert row["amount"] == "42.10"
        assert row["description"] is None
        assert row["user_id"] == "u1"

    def test_new_transaction_rejects_nan(self):
        """Test that non-finite amounts are rejected."""
        with pytest.raises(PydanticValidationError):
            NewTransaction(
                transaction_date=date(2024, 4, 1),
                recipient="r",
                amount=Decimal("NaN"),
                creditor="c",
                bank="b",
                owner_id="u1",
            )


class TestScope:
    """Tests for row-visibility scopes."""

    def test_everything_allows_any_owner(self):
        scope = Scope.everything()
        assert scope.is_everything
        assert scope.allows("anyone")

    def test_owned_by_allows_only_owner(self):
        scope = Scope.owned_by("u1")
        assert scope.allows("u1")
        assert not scope.allows("u2")

    def test_owned_by_needs_user(self):
        with pytest.raises(ValueError):
            Scope.owned_by("")


class TestFilterCriteria:
    """Tests for filter criteria normalization."""

    def test_none_substrings_become_empty(self):
        criteria = FilterCriteria(description_substring=None, project_substring=None)
        assert criteria.description_substring == ""
        assert criteria.is_empty

    def test_blank_dates_become_none(self):
        criteria = FilterCriteria(start_date="", end_date="2024-01-31")
        assert criteria.start_date is None
        assert criteria.end_date == date(2024, 1, 31)
        assert not criteria.is_empty


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SESSION_RESOLVED,
            description="Session resolved",
        )
        assert event.event_type == AuditEventType.SESSION_RESOLVED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Transaction saved",
            details={"owner_id": "u1", "amount": "10"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_saved"
        assert log_dict["details"]["owner_id"] == "u1"

    def test_builder_transaction_saved_on_behalf(self):
        """Test that admin inserts for another user are flagged."""
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_saved(
            transaction_id="t1",
            owner_id="u1",
            actor_id="admin",
            amount="10",
            correlation_id=correlation_id,
        )
        assert event.entity_id == "t1"
        assert event.correlation_id == correlation_id
        assert event.details["on_behalf"] is True
        assert event.is_user_action is True

    def test_builder_delete_with_no_rows(self):
        """Test that a zero-row delete gets its own event type."""
        event = AuditEventBuilder.transaction_deleted(
            transaction_id="t1",
            actor_id="u1",
            rows_affected=0,
            correlation_id=uuid4(),
        )
        assert event.event_type == AuditEventType.DELETE_AFFECTED_NO_ROWS

    def test_builder_listed_with_skipped_rows_warns(self):
        """Test that skipped rows raise the severity."""
        event = AuditEventBuilder.transactions_listed(
            actor_id="u1", scope="own", result_count=3, skipped_rows=1,
        )
        assert event.severity == AuditSeverity.WARNING


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            issues=[
                ValidationIssue(
                    field="transaction_date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
