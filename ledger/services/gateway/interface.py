"""
Abstract Backend Gateway

DESIGN DECISION: The hosted auth/database service is hidden behind an
abstract interface. This allows us to:
1. Swap the hosted backend for another provider
2. Use an in-memory backend for local development and testing
3. Keep session/authorization logic decoupled from any wire protocol

Rows cross this boundary as plain mappings keyed by backend column names.
Turning them into typed records is the repository's job, not the gateway's.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ledger.errors import BackendError
from ledger.models.ledger import Scope, Session


Row = dict[str, Any]
SessionListener = Callable[[Optional[Session]], None]


class Subscription:
    """
    Handle for a session-change listener.

    cancel() releases the listener exactly once, however often it is called.
    """

    def __init__(self, release: Callable[[], None]):
        self._release = release
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._release()


class BackendGateway(ABC):
    """
    Abstract interface for the auth/database backend.

    Any backend implementation must implement these methods.
    All failures surface as BackendError.
    """

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        """
        Get the live session, if any.

        Raises:
            BackendError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    def subscribe(self, on_change: SessionListener) -> Subscription:
        """
        Register for session-change notifications.

        on_change fires for sign-in, sign-out and token refresh, with the new
        session or None. It may be called from any thread.
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session. Listeners receive None."""
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        redirect_to: Optional[str] = None,
    ) -> Optional[Session]:
        """
        Register a new principal.

        The backend sends a verification email; no profile row exists until
        it is confirmed.

        Returns:
            The new session if the backend signs the user in immediately
        """
        pass

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Row]:
        """
        Look up exactly one profile row by user id.

        Returns:
            The row ({id, email, role}) or None if there is none
        """
        pass

    @abstractmethod
    async def find_profile_by_email(self, email: str) -> Optional[Row]:
        """Look up a profile row by email."""
        pass

    @abstractmethod
    async def list_profiles(self) -> list[Row]:
        """All profile rows ({id, email}), for the admin user picker."""
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(self, scope: Scope) -> list[Row]:
        """
        List transaction rows visible under scope.

        Rows carry the owner's email as a joined ``profiles`` relation and
        are ordered by transaction_date, newest first.
        """
        pass

    @abstractmethod
    async def insert_transaction(self, row: Row) -> Row:
        """
        Insert one transaction row.

        Returns:
            The stored row, including its backend-assigned id
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str, scope: Scope) -> int:
        """
        Delete a transaction if it is visible under scope.

        Returns:
            Number of rows deleted (0 when missing or owned by someone else)
        """
        pass


__all__ = [
    "BackendError",
    "BackendGateway",
    "Row",
    "SessionListener",
    "Subscription",
]
