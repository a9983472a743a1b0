"""
Transaction Input Validation

DESIGN DECISION: Form input is validated completely on the client before
anything is sent to the backend. A non-numeric amount is a validation error,
never a backend round trip.

Amounts are parsed once, here, into Decimal. Everything downstream (the
repository, the filter engine) can assume a finite number.

IMPORTANT: Validation NEVER silently fixes issues beyond trimming whitespace.
It reports them.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ledger.errors import ValidationError
from ledger.models.ledger import (
    NewTransaction,
    ValidationIssue,
    ValidationResult,
)


REQUIRED_TEXT_FIELDS = ("recipient", "creditor", "bank")
OPTIONAL_TEXT_FIELDS = ("description", "project")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount into a finite Decimal.

    Accepts str, int, float and Decimal. Returns None if it is not a number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not amount.is_finite():
        return None
    return amount


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD) or pass a date through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


class TransactionValidator:
    """Validates a transaction form before insert."""

    def validate(self, fields: Mapping[str, Any]) -> ValidationResult:
        """
        Check every field and collect all issues.

        Returns a result whose ``cleaned`` holds parsed values when valid.
        """
        issues = []
        cleaned: dict[str, Any] = {}

        # Date
        raw_date = fields.get("transaction_date")
        if raw_date is None or (isinstance(raw_date, str) and not raw_date.strip()):
            issues.append(ValidationIssue(
                field="transaction_date",
                issue_type="missing",
                message="Transaction date is required",
            ))
        else:
            parsed_date = parse_date(raw_date)
            if parsed_date is None:
                issues.append(ValidationIssue(
                    field="transaction_date",
                    issue_type="invalid_format",
                    message=f"Transaction date must look like 2024-01-31, got {raw_date!r}",
                ))
            else:
                cleaned["transaction_date"] = parsed_date

        # Amount
        raw_amount = fields.get("amount")
        if raw_amount is None or (isinstance(raw_amount, str) and not raw_amount.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
            ))
        else:
            amount = parse_amount(raw_amount)
            if amount is None:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="not_a_number",
                    message=f"Amount must be a number, got {raw_amount!r}",
                ))
            else:
                cleaned["amount"] = amount

        for name in REQUIRED_TEXT_FIELDS:
            value = fields.get(name)
            text = value.strip() if isinstance(value, str) else ""
            if not text:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="missing",
                    message=f"{name.capitalize()} is required",
                ))
            else:
                cleaned[name] = text

        for name in OPTIONAL_TEXT_FIELDS:
            value = fields.get(name)
            if value is not None and not isinstance(value, str):
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="invalid_type",
                    message=f"{name.capitalize()} must be text",
                ))
                continue
            text = value.strip() if value else ""
            cleaned[name] = text or None

        if any(issue.severity == "error" for issue in issues):
            cleaned = {}
        return ValidationResult(issues=issues, cleaned=cleaned)

    def to_new_transaction(self, fields: Mapping[str, Any], owner_id: str) -> NewTransaction:
        """
        Validate and build the insert payload.

        Raises:
            ValidationError: listing every issue found
        """
        result = self.validate(fields)
        if not result.is_valid:
            raise ValidationError(self.get_user_friendly_summary(result), result.issues)

        try:
            return NewTransaction(owner_id=owner_id, **result.cleaned)
        except PydanticValidationError as e:
            issues = [
                ValidationIssue(
                    field=".".join(str(part) for part in err["loc"]) or "form",
                    issue_type=err["type"],
                    message=err["msg"],
                )
                for err in e.errors()
            ]
            summary = self.get_user_friendly_summary(ValidationResult(issues=issues))
            raise ValidationError(summary, issues) from e

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line suitable for the dashboard's error slot."""
        if result.is_valid:
            return "Transaction looks good."
        errors = [issue.message for issue in result.issues if issue.severity == "error"]
        if len(errors) == 1:
            return errors[0]
        return "Please fix the following: " + "; ".join(errors)
