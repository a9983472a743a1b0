"""
Dashboard Facade

Everything the presentation layer needs, with no rendering:
- the ApplicationState to decide which screen to show
- the filtered transaction list and its running total
- the admin user picker
- ONE human-readable error string (last error wins, no queue)

DESIGN DECISION: Every repository error is caught here, at the call site,
and turned into that one message. Nothing propagates into the session
resolver, and nothing crashes the page.
"""

import asyncio
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ledger.audit import create_correlation_id
from ledger.context import LedgerContext
from ledger.errors import AuthorizationError, BackendError, LedgerError, ValidationError
from ledger.models.ledger import (
    ApplicationState,
    FilterCriteria,
    Profile,
    ResolvedSession,
    Transaction,
    TransactionListResult,
)
from ledger.queries import filter_transactions


logger = structlog.get_logger(__name__)

BACKEND_ERROR_MESSAGE = "Something went wrong talking to the server. Please try again."
DUPLICATE_EMAIL_MESSAGE = (
    "This email is already registered. Please log in instead, "
    "or check your inbox to verify your account."
)
SIGNUP_SENT_MESSAGE = (
    "A confirmation email has been sent. Please click the verification "
    "link to complete your signup."
)


class DashboardView(BaseModel):
    """Snapshot handed to the presentation layer."""

    state: ApplicationState
    email: Optional[str] = None
    is_admin: bool = False
    verified: bool = False
    transactions: list[Transaction] = Field(default_factory=list)
    total: Decimal = Decimal("0")
    count: int = 0
    filter_description: str = ""
    criteria: FilterCriteria = Field(default_factory=FilterCriteria)
    users: list[Profile] = Field(default_factory=list)
    error: Optional[str] = None
    notice: Optional[str] = None
    currency_symbol: str = "#"

    @property
    def formatted_total(self) -> str:
        return f"{self.currency_symbol}{self.total:,.2f}"


class LedgerDashboard:
    """
    View model over a LedgerContext.

    Re-fetches transactions whenever the session resolves to a signed-in
    state and drops them on sign-out.
    """

    def __init__(self, context: LedgerContext, currency_symbol: str = "#"):
        self._context = context
        self._currency_symbol = currency_symbol
        self._criteria = FilterCriteria()
        self._users: list[Profile] = []
        self._error: Optional[str] = None
        self._notice: Optional[str] = None
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._remove_listener = context.resolver.add_listener(self._on_state_change)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def snapshot(self) -> ResolvedSession:
        return self._context.snapshot

    def close(self) -> None:
        """Stop reacting to session changes."""
        self._remove_listener()

    async def settle(self) -> None:
        """Wait for session resolution and any refresh it triggered."""
        await self._context.resolver.settle()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Session reactions
    # -------------------------------------------------------------------------

    def _on_state_change(self, snapshot: ResolvedSession) -> None:
        self._generation += 1
        if not snapshot.state.is_authenticated:
            self._context.repository.clear()
            self._users = []
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no_running_loop_for_refresh", state=snapshot.state.value)
            return
        task = loop.create_task(self._refresh_after_change(self._generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh_after_change(self, generation: int) -> None:
        await self.refresh(generation=generation)
        if self.snapshot.is_admin and generation == self._generation:
            await self.load_users()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def _is_current(self, generation: int) -> Callable[[], bool]:
        """True while no session change has happened since ``generation``."""
        return lambda: generation == self._generation

    async def refresh(self, generation: Optional[int] = None) -> bool:
        """Re-fetch the visible transactions."""
        generation = self._generation if generation is None else generation
        snapshot = self.snapshot
        result = await self._context.repository.list_transactions(
            snapshot.state,
            snapshot.user_id,
            is_current=self._is_current(generation),
        )
        if generation != self._generation:
            # The session changed while we were fetching
            logger.debug("stale_refresh_ignored", generation=generation)
            return False
        return self._apply_list_result(result)

    async def load_users(self) -> bool:
        """Fill the admin "select user" picker."""
        snapshot = self.snapshot
        if not snapshot.is_admin:
            self._users = []
            return False
        generation = self._generation
        correlation_id = create_correlation_id()
        try:
            rows = await self._context.gateway.list_profiles()
        except BackendError as e:
            self._fail(e, "list_profiles", correlation_id)
            return False
        if generation != self._generation:
            logger.debug("stale_user_list_ignored", generation=generation)
            return False

        users = []
        for row in rows:
            try:
                users.append(Profile.model_validate(row))
            except PydanticValidationError as e:
                logger.warning("malformed_profile_row", error_count=e.error_count())
        self._users = sorted(users, key=lambda p: (p.email or "", p.id))
        return True

    async def add_transaction(
        self,
        fields: Mapping[str, Any],
        target_user_id: Optional[str] = None,
    ) -> bool:
        """Submit the add-transaction form. Returns True on success."""
        snapshot = self.snapshot
        generation = self._generation
        correlation_id = create_correlation_id()
        try:
            result = await self._context.repository.insert_transaction(
                snapshot.state,
                snapshot.user_id,
                fields,
                target_user_id=target_user_id,
                correlation_id=correlation_id,
                is_current=self._is_current(generation),
            )
        except LedgerError as e:
            if generation == self._generation:
                self._fail(e, "insert", correlation_id)
            return False
        return self._apply_write_result(result, generation)

    async def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a row. Deleting someone else's row quietly does nothing."""
        snapshot = self.snapshot
        generation = self._generation
        correlation_id = create_correlation_id()
        try:
            result = await self._context.repository.delete_transaction(
                snapshot.state,
                snapshot.user_id,
                transaction_id,
                correlation_id=correlation_id,
                is_current=self._is_current(generation),
            )
        except LedgerError as e:
            if generation == self._generation:
                self._fail(e, "delete", correlation_id)
            return False
        return self._apply_write_result(result, generation)

    async def sign_out(self) -> bool:
        correlation_id = create_correlation_id()
        user_id = self.snapshot.user_id
        try:
            await self._context.gateway.sign_out()
        except BackendError as e:
            self._fail(e, "sign_out", correlation_id)
            return False
        self._context.audit_logger.log_signed_out(user_id, correlation_id)
        self._error = None
        return True

    async def sign_up(self, email: str, password: str) -> bool:
        """
        Start registration.

        An email that already has a profile is rejected before signup.
        """
        correlation_id = create_correlation_id()
        email = email.strip()
        self._notice = None
        if not email or not password:
            self._error = "Email and password are required."
            return False

        try:
            existing = await self._context.gateway.find_profile_by_email(email)
            if existing:
                self._context.audit_logger.log_signup_rejected(
                    email, "already_registered", correlation_id
                )
                self._error = DUPLICATE_EMAIL_MESSAGE
                return False
            await self._context.gateway.sign_up(email, password)
        except BackendError as e:
            self._fail(e, "sign_up", correlation_id, message=str(e))
            return False

        self._context.audit_logger.log_signup_requested(email, correlation_id)
        self._error = None
        self._notice = SIGNUP_SENT_MESSAGE
        return True

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def set_criteria(self, **changes: Any) -> FilterCriteria:
        """
        Update one or more filter fields.

        e.g. set_criteria(description_substring="rent", start_date="2024-01-01")
        """
        self._criteria = FilterCriteria.model_validate(
            {**self._criteria.model_dump(), **changes}
        )
        return self._criteria

    def clear_criteria(self) -> None:
        self._criteria = FilterCriteria()

    # -------------------------------------------------------------------------
    # View
    # -------------------------------------------------------------------------

    def view(self) -> DashboardView:
        snapshot = self.snapshot
        transactions = (
            self._context.repository.transactions
            if snapshot.state.is_authenticated
            else []
        )
        if not snapshot.is_admin:
            transactions = [t for t in transactions if t.owner_id == snapshot.user_id]
        filtered = filter_transactions(transactions, self._criteria)
        return DashboardView(
            state=snapshot.state,
            email=snapshot.email,
            is_admin=snapshot.is_admin,
            verified=snapshot.verified,
            transactions=filtered.transactions,
            total=filtered.total,
            count=filtered.count,
            filter_description=filtered.description,
            criteria=self._criteria,
            users=list(self._users) if snapshot.is_admin else [],
            error=self._error,
            notice=self._notice,
            currency_symbol=self._currency_symbol,
        )

    # -------------------------------------------------------------------------
    # Error surfacing
    # -------------------------------------------------------------------------

    def _apply_write_result(self, result: TransactionListResult, generation: int) -> bool:
        if generation != self._generation:
            # The write went through; the re-fetch belongs to an old session
            logger.debug("stale_write_refresh_ignored", generation=generation)
            return True
        return self._apply_list_result(result)

    def _apply_list_result(self, result: TransactionListResult) -> bool:
        if result.success:
            self._error = None
            return True
        # scope is only set when the backend was actually asked
        self._error = BACKEND_ERROR_MESSAGE if result.scope is not None else result.error_message
        return False

    def _fail(
        self,
        error: LedgerError,
        operation: str,
        correlation_id: UUID,
        message: Optional[str] = None,
    ) -> None:
        if isinstance(error, BackendError):
            self._context.audit_logger.log_backend_error(
                operation=operation,
                error_message=str(error),
                actor_id=self.snapshot.user_id,
                correlation_id=correlation_id,
            )
            self._error = message or BACKEND_ERROR_MESSAGE
        elif isinstance(error, (ValidationError, AuthorizationError)):
            self._error = str(error)
        else:
            logger.error("unexpected_ledger_error", operation=operation, error=str(error))
            self._error = BACKEND_ERROR_MESSAGE
