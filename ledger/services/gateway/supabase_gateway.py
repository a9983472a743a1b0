"""
Supabase Backend Gateway

DESIGN DECISION: Supabase is the hosted backend because it provides auth
(email verification included) and Postgres with row-level security in one
service. The client-side checks in this package mirror those policies; the
policies remain the real enforcement.

The async client is used throughout, so a slow round trip suspends only the
coroutine waiting on it. Auth-change callbacks can still fire on another
thread (the token refresh timer), so listeners must be thread-safe.

Only idempotent reads are retried. Retrying an insert could duplicate a row.
"""

import asyncio
from typing import Any, Optional

import structlog
from supabase import AsyncClient, acreate_client
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger.config import SupabaseSettings, get_settings
from ledger.errors import BackendError
from ledger.models.ledger import Scope, Session
from ledger.services.gateway.interface import (
    BackendGateway,
    Row,
    SessionListener,
    Subscription,
)


logger = structlog.get_logger(__name__)

TRANSACTION_COLUMNS = (
    "id, transaction_date, recipient, amount, creditor, bank, "
    "description, project, user_id, profiles(email)"
)


def _to_session(raw: Any) -> Optional[Session]:
    """Convert a client session object (or None) to our Session."""
    user = getattr(raw, "user", None) if raw is not None else None
    if user is None or not getattr(user, "id", None):
        return None
    return Session(user_id=str(user.id), email=getattr(user, "email", None))


class SupabaseGateway(BackendGateway):
    """
    Supabase implementation of the backend gateway.

    Transactions and profiles are plain tables; the owner email is fetched
    with an embedded ``profiles(email)`` select.
    """

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        settings: Optional[SupabaseSettings] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._client = client
        self._connect_lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Get or create the Supabase client."""
        if self._client is None:
            async with self._connect_lock:
                if self._client is None:
                    try:
                        self._client = await acreate_client(self._settings.url, self._settings.key)
                    except Exception as e:
                        raise BackendError(f"Failed to connect to backend: {e}", operation="connect")
        return self._client

    async def _transactions(self):
        client = await self._get_client()
        return client.table(self._settings.transactions_table)

    async def _profiles(self):
        client = await self._get_client()
        return client.table(self._settings.profiles_table)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def get_session(self) -> Optional[Session]:
        try:
            client = await self._get_client()
            return _to_session(await client.auth.get_session())
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to get session: {e}", operation="get_session")

    def subscribe(self, on_change: SessionListener) -> Subscription:
        def handle(event: Any, session: Any) -> None:
            logger.debug("auth_state_change", auth_event=str(event))
            on_change(_to_session(session))

        if self._client is None:
            raise BackendError("Not connected; read the session first", operation="subscribe")
        try:
            registration = self._client.auth.on_auth_state_change(handle)
        except Exception as e:
            raise BackendError(f"Failed to subscribe to auth changes: {e}", operation="subscribe")

        return Subscription(registration.unsubscribe)

    async def sign_out(self) -> None:
        try:
            client = await self._get_client()
            await client.auth.sign_out()
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to sign out: {e}", operation="sign_out")

    async def sign_up(
        self,
        email: str,
        password: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[Session]:
        credentials: dict[str, Any] = {"email": email, "password": password}
        redirect_to = redirect_to or self._settings.email_redirect_to
        if redirect_to:
            credentials["options"] = {"email_redirect_to": redirect_to}
        try:
            client = await self._get_client()
            response = await client.auth.sign_up(credentials)
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Signup failed: {e}", operation="sign_up")

        if getattr(response, "user", None) is None:
            raise BackendError("Signup failed. Please try again.", operation="sign_up")
        return _to_session(getattr(response, "session", None))

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def get_profile(self, user_id: str) -> Optional[Row]:
        try:
            response = await (
                (await self._profiles())
                .select("id, email, role")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to get profile: {e}", operation="get_profile")
        rows = response.data or []
        return rows[0] if rows else None

    async def find_profile_by_email(self, email: str) -> Optional[Row]:
        try:
            response = await (
                (await self._profiles())
                .select("id, email")
                .eq("email", email)
                .limit(1)
                .execute()
            )
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to look up email: {e}", operation="find_profile_by_email")
        rows = response.data or []
        return rows[0] if rows else None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def list_profiles(self) -> list[Row]:
        try:
            response = await (await self._profiles()).select("id, email").execute()
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to list users: {e}", operation="list_profiles")
        return list(response.data or [])

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def list_transactions(self, scope: Scope) -> list[Row]:
        try:
            query = (await self._transactions()).select(TRANSACTION_COLUMNS)
            if not scope.is_everything:
                query = query.eq("user_id", scope.owner_id)
            response = await query.order("transaction_date", desc=True).execute()
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to list transactions: {e}", operation="list_transactions")
        return list(response.data or [])

    async def insert_transaction(self, row: Row) -> Row:
        try:
            response = await (await self._transactions()).insert(row).execute()
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to save transaction: {e}", operation="insert_transaction")
        rows = response.data or []
        if not rows:
            raise BackendError(
                "Insert returned no row (blocked by row-level policy?)",
                operation="insert_transaction",
            )
        return rows[0]

    async def delete_transaction(self, transaction_id: str, scope: Scope) -> int:
        try:
            query = (await self._transactions()).delete().eq("id", transaction_id)
            if not scope.is_everything:
                query = query.eq("user_id", scope.owner_id)
            response = await query.execute()
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Failed to delete transaction: {e}", operation="delete_transaction")
        return len(response.data or [])
