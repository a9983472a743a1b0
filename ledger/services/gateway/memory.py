"""
In-Memory Backend Gateway

Deterministic stand-in for the hosted backend, used for local development
(LEDGER_BACKEND=memory) and tests. It mirrors the hosted backend's
row-level behaviour: deletes outside the caller's scope affect zero rows.
"""

from copy import deepcopy
from typing import Optional
from uuid import uuid4

import structlog

from ledger.errors import BackendError
from ledger.models.ledger import Scope, Session
from ledger.services.gateway.interface import (
    BackendGateway,
    Row,
    SessionListener,
    Subscription,
)


logger = structlog.get_logger(__name__)


class InMemoryGateway(BackendGateway):
    """
    Backend held in dictionaries.

    Test hooks:
        calls          -- names of every backend operation invoked, in order
        fail_operations -- operation names that raise BackendError
        emit(session)  -- push a session-change notification
        verify_user()  -- create the profile row, as email verification would
    """

    def __init__(
        self,
        profiles: Optional[list[Row]] = None,
        transactions: Optional[list[Row]] = None,
        session: Optional[Session] = None,
    ):
        self._profiles: dict[str, Row] = {p["id"]: dict(p) for p in profiles or []}
        self._transactions: dict[str, Row] = {}
        for row in transactions or []:
            row = dict(row)
            row.setdefault("id", str(uuid4()))
            self._transactions[str(row["id"])] = row
        self._session = session
        self._listeners: dict[int, SessionListener] = {}
        self._next_listener_id = 0
        self._pending_users: dict[str, str] = {}

        self.calls: list[str] = []
        self.fail_operations: set[str] = set()

    # -------------------------------------------------------------------------
    # Test hooks
    # -------------------------------------------------------------------------

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, session: Optional[Session]) -> None:
        """Change the live session and notify every listener."""
        self._session = session
        for listener in list(self._listeners.values()):
            listener(session)

    def verify_user(self, user_id: str, role: str = "user", email: Optional[str] = None) -> None:
        """Create the profile row for a user, as the backend does on verification."""
        email = email or self._pending_users.pop(user_id, None)
        self._profiles[user_id] = {"id": user_id, "email": email, "role": role}

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_operations:
            raise BackendError(f"Simulated backend failure in {operation}", operation=operation)

    def _with_owner_email(self, row: Row) -> Row:
        out = deepcopy(row)
        profile = self._profiles.get(row.get("user_id"))
        out["profiles"] = {"email": profile.get("email")} if profile else None
        return out

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        self._record("get_session")
        return self._session

    def subscribe(self, on_change: SessionListener) -> Subscription:
        if "subscribe" in self.fail_operations:
            raise BackendError("Simulated backend failure in subscribe", operation="subscribe")
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = on_change

        def release() -> None:
            self._listeners.pop(listener_id, None)

        return Subscription(release)

    async def sign_out(self) -> None:
        self._record("sign_out")
        self.emit(None)

    async def sign_up(
        self,
        email: str,
        password: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[Session]:
        self._record("sign_up")
        if not password:
            raise BackendError("Password is required", operation="sign_up")
        user_id = str(uuid4())
        self._pending_users[user_id] = email
        logger.info("memory_signup", user_id=user_id, redirect_to=redirect_to)
        # Email confirmation is required, so no session yet
        return None

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[Row]:
        self._record("get_profile")
        profile = self._profiles.get(user_id)
        return dict(profile) if profile else None

    async def find_profile_by_email(self, email: str) -> Optional[Row]:
        self._record("find_profile_by_email")
        for profile in self._profiles.values():
            if profile.get("email") == email:
                return dict(profile)
        return None

    async def list_profiles(self) -> list[Row]:
        self._record("list_profiles")
        return [
            {"id": p["id"], "email": p.get("email")}
            for p in self._profiles.values()
        ]

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(self, scope: Scope) -> list[Row]:
        self._record("list_transactions")
        rows = [
            self._with_owner_email(row)
            for row in self._transactions.values()
            if scope.allows(row.get("user_id"))
        ]
        rows.sort(key=lambda r: str(r.get("transaction_date") or ""), reverse=True)
        return rows

    async def insert_transaction(self, row: Row) -> Row:
        self._record("insert_transaction")
        if not row.get("user_id"):
            raise BackendError("user_id violates not-null constraint", operation="insert_transaction")
        stored = dict(row)
        stored["id"] = str(uuid4())
        self._transactions[stored["id"]] = stored
        return self._with_owner_email(stored)

    async def delete_transaction(self, transaction_id: str, scope: Scope) -> int:
        self._record("delete_transaction")
        row = self._transactions.get(str(transaction_id))
        if row is None or not scope.allows(row.get("user_id")):
            return 0
        del self._transactions[str(transaction_id)]
        return 1
