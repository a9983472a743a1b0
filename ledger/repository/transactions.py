"""
Transaction Repository

DESIGN DECISION: Every operation is scoped by the caller's resolved
ApplicationState:
- Admins see and delete every row, and insert on behalf of a chosen user
- Everyone else only ever reads, writes or deletes rows they own

These checks mirror the backend's row-level policies; they do not replace
them. Their job is to stop bad requests before a round trip and to keep a
tampered admin-only field (target user) out of the user path.

After every successful write the whole list is re-fetched. The held list is
never patched locally, so it cannot drift from the backend.
"""

from typing import Any, Callable, Mapping, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError

from ledger.audit import AuditLogger, create_correlation_id
from ledger.errors import (
    AuthorizationError,
    BackendError,
    MissingTargetUserError,
    ValidationError,
)
from ledger.models.ledger import (
    ApplicationState,
    Scope,
    Transaction,
    TransactionListResult,
)
from ledger.services.gateway import BackendGateway, Row
from ledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)

UNVERIFIED_MESSAGE = (
    "You must verify your email before adding transactions. "
    "Please check your inbox for the verification email."
)
SIGNED_OUT_MESSAGE = "You are not signed in."


def scope_for(state: ApplicationState, user_id: Optional[str]) -> Scope:
    """
    Row-visibility rule for a caller.

    Raises:
        AuthorizationError: if the caller is not signed in
    """
    if not state.is_authenticated or not user_id:
        raise AuthorizationError(SIGNED_OUT_MESSAGE, reason="unauthenticated")
    if state.is_admin:
        return Scope.everything()
    return Scope.owned_by(user_id)


class TransactionRepository:
    """
    Access-scoped reads, writes and deletes.

    Holds the most recently fetched list for the lifetime of a page.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger
        self._transactions: list[Transaction] = []

    @property
    def transactions(self) -> list[Transaction]:
        """Rows from the last successful fetch, newest first."""
        return list(self._transactions)

    def clear(self) -> None:
        """Forget the held list (e.g. on sign-out)."""
        self._transactions = []

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        state: ApplicationState,
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> TransactionListResult:
        """
        Fetch every transaction visible to the caller.

        Never raises: failures come back as an unsuccessful result with no rows.

        is_current is checked once the rows arrive. If it returns False the
        caller's session has moved on and the held list is left untouched.
        """
        try:
            scope = scope_for(state, user_id)
        except AuthorizationError as e:
            return TransactionListResult.failed(str(e))

        try:
            rows = await self._gateway.list_transactions(scope)
        except BackendError as e:
            logger.error("list_transactions_failed", user_id=user_id, error=str(e))
            if self._audit_logger:
                self._audit_logger.log_list_failed(
                    actor_id=user_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return TransactionListResult.failed(str(e), scope=scope)

        transactions, skipped = self._rows_to_transactions(rows, scope)
        transactions.sort(key=lambda t: t.transaction_date, reverse=True)
        if is_current is not None and not is_current():
            logger.info("stale_list_discarded", user_id=user_id, result_count=len(transactions))
        else:
            self._transactions = transactions

        if self._audit_logger:
            self._audit_logger.log_transactions_listed(
                actor_id=user_id,
                scope="all" if scope.is_everything else "own",
                result_count=len(transactions),
                skipped_rows=skipped,
                correlation_id=correlation_id,
            )

        return TransactionListResult(
            success=True,
            transactions=list(transactions),
            scope=scope,
            skipped_rows=skipped,
        )

    def _rows_to_transactions(
        self,
        rows: list[Row],
        scope: Scope,
    ) -> tuple[list[Transaction], int]:
        """Map backend rows to Transactions, skipping anything malformed."""
        transactions = []
        skipped = 0
        for row in rows:
            try:
                transaction = Transaction.from_row(row)
            except (PydanticValidationError, AttributeError, TypeError) as e:
                skipped += 1
                logger.warning(
                    "malformed_transaction_row",
                    row_id=row.get("id") if isinstance(row, dict) else None,
                    error=str(e),
                )
                continue

            if not scope.allows(transaction.owner_id):
                # The backend returned a row outside our scope; never show it
                skipped += 1
                logger.error(
                    "out_of_scope_row",
                    transaction_id=transaction.id,
                    owner_id=transaction.owner_id,
                    scope_owner=scope.owner_id,
                )
                continue

            transactions.append(transaction)
        return transactions, skipped

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert_transaction(
        self,
        state: ApplicationState,
        user_id: Optional[str],
        fields: Mapping[str, Any],
        target_user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> TransactionListResult:
        """
        Validate and insert a transaction, then re-fetch.

        Checks run before any network call, in this order:
        1. caller is verified               -> AuthorizationError
        2. admin has chosen a target user   -> MissingTargetUserError
        3. fields are valid                 -> ValidationError

        Raises:
            AuthorizationError, ValidationError: rejected client-side
            BackendError: the insert itself failed
        """
        correlation_id = correlation_id or create_correlation_id()

        if not state.is_verified or not user_id:
            self._reject("insert", "unverified", user_id, UNVERIFIED_MESSAGE, correlation_id)
            raise AuthorizationError(UNVERIFIED_MESSAGE, reason="unverified")

        if state.is_admin:
            if not target_user_id:
                error = MissingTargetUserError()
                self._reject("insert", error.reason, user_id, str(error), correlation_id)
                raise error
            owner_id = target_user_id
        else:
            if target_user_id and target_user_id != user_id:
                logger.warning(
                    "target_user_ignored",
                    user_id=user_id,
                    target_user_id=target_user_id,
                )
            owner_id = user_id

        try:
            payload = self._validator.to_new_transaction(fields, owner_id=owner_id)
        except ValidationError as e:
            self._reject("insert", "invalid_fields", user_id, str(e), correlation_id)
            raise

        stored = await self._gateway.insert_transaction(payload.to_row())

        if self._audit_logger:
            self._audit_logger.log_transaction_saved(
                transaction_id=str(stored.get("id", "")),
                owner_id=owner_id,
                actor_id=user_id,
                amount=str(payload.amount),
                correlation_id=correlation_id,
            )

        return await self.list_transactions(
            state, user_id, correlation_id=correlation_id, is_current=is_current
        )

    async def delete_transaction(
        self,
        state: ApplicationState,
        user_id: Optional[str],
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> TransactionListResult:
        """
        Delete a transaction, then re-fetch.

        For non-admins the delete is constrained to their own rows. Deleting
        someone else's row affects nothing and is still reported as success.

        Raises:
            AuthorizationError: caller is not signed in
            BackendError: the delete itself failed
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            scope = scope_for(state, user_id)
        except AuthorizationError as e:
            self._reject("delete", e.reason, user_id, str(e), correlation_id)
            raise

        rows_affected = await self._gateway.delete_transaction(str(transaction_id), scope)
        if rows_affected == 0:
            logger.info(
                "delete_affected_no_rows",
                user_id=user_id,
                transaction_id=transaction_id,
            )

        if self._audit_logger:
            self._audit_logger.log_transaction_deleted(
                transaction_id=str(transaction_id),
                actor_id=user_id,
                rows_affected=rows_affected,
                correlation_id=correlation_id,
            )

        return await self.list_transactions(
            state, user_id, correlation_id=correlation_id, is_current=is_current
        )

    def _reject(
        self,
        operation: str,
        reason: str,
        user_id: Optional[str],
        message: str,
        correlation_id: UUID,
    ) -> None:
        logger.info("operation_rejected", operation=operation, reason=reason, user_id=user_id)
        if self._audit_logger:
            self._audit_logger.log_operation_rejected(
                operation=operation,
                reason=reason,
                actor_id=user_id,
                message=message,
                correlation_id=correlation_id,
            )
