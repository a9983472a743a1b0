"""
Core Data Models for Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at the backend boundary
2. Provide clear validation error messages
3. Keep derived state (ApplicationState) separate from backend-owned records

DESIGN DECISION: Backend rows are duck-typed mappings. Nothing downstream of
the repository ever sees one; it only sees these models.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Role(str, Enum):
    """Role stored on a profile row."""
    USER = "user"
    ADMIN = "admin"


class ApplicationState(str, Enum):
    """
    What the presentation layer renders.

    Derived on every session change, never persisted.
    """
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_UNVERIFIED = "authenticated_unverified"
    AUTHENTICATED_USER = "authenticated_user"
    AUTHENTICATED_ADMIN = "authenticated_admin"

    @property
    def is_authenticated(self) -> bool:
        return self in (
            ApplicationState.AUTHENTICATED_UNVERIFIED,
            ApplicationState.AUTHENTICATED_USER,
            ApplicationState.AUTHENTICATED_ADMIN,
        )

    @property
    def is_verified(self) -> bool:
        return self in (
            ApplicationState.AUTHENTICATED_USER,
            ApplicationState.AUTHENTICATED_ADMIN,
        )

    @property
    def is_admin(self) -> bool:
        return self == ApplicationState.AUTHENTICATED_ADMIN


# =============================================================================
# SESSION / AUTHORIZATION
# =============================================================================

class Session(BaseModel):
    """The current principal, as reported by the backend."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None


class Profile(BaseModel):
    """
    One profile per verified principal.

    CRITICAL: A profile row only exists once the email is verified.
    Its absence is the sole "unverified" signal.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    role: Role = Role.USER

    @field_validator('role', mode='before')
    @classmethod
    def normalize_role(cls, v: Any) -> Role:
        """Empty/null/unknown roles are plain users."""
        if isinstance(v, Role):
            return v
        if isinstance(v, str) and v.strip().lower() == Role.ADMIN.value:
            return Role.ADMIN
        return Role.USER


class Classification(BaseModel):
    """Output of the authorization classifier."""
    model_config = ConfigDict(frozen=True)

    verified: bool
    role: Role = Role.USER
    profile: Optional[Profile] = None

    @classmethod
    def unverified(cls) -> "Classification":
        return cls(verified=False, role=Role.USER)


class ResolvedSession(BaseModel):
    """
    Snapshot produced by the session resolver.

    state is always consistent with (session, classification).
    """
    model_config = ConfigDict(frozen=True)

    state: ApplicationState = ApplicationState.LOADING
    session: Optional[Session] = None
    classification: Optional[Classification] = None
    resolved_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    @property
    def email(self) -> Optional[str]:
        return self.session.email if self.session else None

    @property
    def verified(self) -> bool:
        return self.state.is_verified

    @property
    def is_admin(self) -> bool:
        return self.state.is_admin


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class NewTransaction(BaseModel):
    """
    Validated insert payload.

    owner_id is decided by the repository, never by the form.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    transaction_date: date
    recipient: str = Field(..., min_length=1, max_length=200)
    amount: Annotated[Decimal, Field(allow_inf_nan=False)]
    creditor: str = Field(..., min_length=1, max_length=200)
    bank: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    project: Optional[str] = Field(default=None, max_length=200)
    owner_id: str = Field(..., min_length=1)

    @field_validator('description', 'project', mode='before')
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def to_row(self) -> dict[str, Any]:
        """Backend column names."""
        return {
            "transaction_date": self.transaction_date.isoformat(),
            "recipient": self.recipient,
            "amount": str(self.amount),
            "creditor": self.creditor,
            "bank": self.bank,
            "description": self.description,
            "project": self.project,
            "user_id": self.owner_id,
        }


class Transaction(BaseModel):
    """
    A stored transaction.

    Never updated in place; owner_id is fixed at creation.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    transaction_date: date
    recipient: str
    amount: Annotated[Decimal, Field(allow_inf_nan=False)]
    creditor: str
    bank: str
    description: Optional[str] = None
    project: Optional[str] = None
    owner_id: str = Field(..., min_length=1)
    owner_email: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Transaction":
        """
        Build from a backend row.

        The owner email arrives as a joined relation (``profiles`` or ``user``)
        holding ``{"email": ...}``.

        Raises:
            pydantic.ValidationError: if required fields are missing or malformed
        """
        joined = row.get("profiles") or row.get("user") or {}
        if isinstance(joined, list):
            joined = joined[0] if joined else {}
        raw_id = row.get("id")
        amount = row.get("amount")
        if isinstance(amount, float):
            # Go through str so 10.1 stays 10.1
            amount = str(amount)
        return cls(
            id=str(raw_id) if raw_id is not None else "",
            transaction_date=row.get("transaction_date"),
            recipient=row.get("recipient"),
            amount=amount,
            creditor=row.get("creditor"),
            bank=row.get("bank"),
            description=row.get("description"),
            project=row.get("project"),
            owner_id=row.get("user_id"),
            owner_email=joined.get("email") if isinstance(joined, dict) else None,
        )


class Scope(BaseModel):
    """Row-visibility rule for a transaction operation."""
    model_config = ConfigDict(frozen=True)

    owner_id: Optional[str] = None

    @classmethod
    def everything(cls) -> "Scope":
        return cls()

    @classmethod
    def owned_by(cls, user_id: str) -> "Scope":
        if not user_id:
            raise ValueError("owned_by scope needs a user id")
        return cls(owner_id=user_id)

    @property
    def is_everything(self) -> bool:
        return self.owner_id is None

    def allows(self, owner_id: Optional[str]) -> bool:
        return self.is_everything or owner_id == self.owner_id


class TransactionListResult(BaseModel):
    """
    Result of listing transactions.

    On failure, transactions is empty - never a stale copy.
    """

    success: bool
    transactions: list[Transaction] = Field(default_factory=list)
    error_message: Optional[str] = None
    scope: Optional[Scope] = None
    skipped_rows: int = Field(default=0, ge=0)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def failed(cls, message: str, scope: Optional[Scope] = None) -> "TransactionListResult":
        return cls(success=False, error_message=message, scope=scope)


# =============================================================================
# FILTERING
# =============================================================================

class FilterCriteria(BaseModel):
    """Transient filter input from the dashboard."""
    model_config = ConfigDict(frozen=True)

    description_substring: str = ""
    project_substring: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator('description_substring', 'project_substring', mode='before')
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def blank_date_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def is_empty(self) -> bool:
        return not (
            self.description_substring
            or self.project_substring
            or self.start_date
            or self.end_date
        )


class FilterResult(BaseModel):
    """Filtered view plus its sum."""

    transactions: list[Transaction] = Field(default_factory=list)
    total: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)
    description: str = ""


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
    )


class ValidationResult(BaseModel):
    """Result of validating a transaction form."""

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)
    cleaned: dict[str, Any] = Field(
        default_factory=dict,
        description="Parsed field values, only meaningful when is_valid"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
