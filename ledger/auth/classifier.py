"""
Authorization Classifier

Decides, for a signed-in user, whether they are verified and which role
they hold, and maps (session, classification) onto the ApplicationState
the dashboard renders.

CRITICAL: A profile row is only created once the user's email is verified,
so "profile row exists" is the verification signal. There is no separate
flag. Any failure to read the row therefore means "unverified user".
"""

from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from ledger.audit import AuditLogger
from ledger.errors import BackendError
from ledger.models.ledger import (
    ApplicationState,
    Classification,
    Profile,
    Role,
    Session,
)
from ledger.services.gateway import BackendGateway


logger = structlog.get_logger(__name__)


def resolve_state(
    session: Optional[Session],
    classification: Optional[Classification],
) -> ApplicationState:
    """
    Pure transition table.

    | Session | Verified | Role  | State                    |
    |---------|----------|-------|--------------------------|
    | absent  | -        | -     | UNAUTHENTICATED          |
    | present | pending  | -     | LOADING                  |
    | present | False    | any   | AUTHENTICATED_UNVERIFIED |
    | present | True     | user  | AUTHENTICATED_USER       |
    | present | True     | admin | AUTHENTICATED_ADMIN      |

    Unverified wins over role.
    """
    if session is None:
        return ApplicationState.UNAUTHENTICATED
    if classification is None:
        return ApplicationState.LOADING
    if not classification.verified:
        return ApplicationState.AUTHENTICATED_UNVERIFIED
    if classification.role == Role.ADMIN:
        return ApplicationState.AUTHENTICATED_ADMIN
    return ApplicationState.AUTHENTICATED_USER


class AuthorizationClassifier:
    """
    Looks up a user's profile to determine role and verification status.

    GUARANTEES:
    - Exactly one profile lookup per call
    - Never raises; every failure degrades to unverified/user
    """

    def __init__(
        self,
        gateway: BackendGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._audit_logger = audit_logger

    async def classify(self, user_id: str) -> Classification:
        try:
            row = await self._gateway.get_profile(user_id)
        except BackendError as e:
            self._log_failure(user_id, str(e))
            return Classification.unverified()
        except Exception as e:
            # Anything a gateway throws lands here too
            self._log_failure(user_id, f"{type(e).__name__}: {e}")
            return Classification.unverified()

        if not row:
            logger.info("profile_missing", user_id=user_id)
            return Classification.unverified()

        try:
            profile = Profile.model_validate(row)
        except PydanticValidationError as e:
            self._log_failure(user_id, f"malformed profile row: {e.error_count()} errors")
            return Classification.unverified()

        return Classification(verified=True, role=profile.role, profile=profile)

    def _log_failure(self, user_id: str, message: str) -> None:
        logger.warning("classification_failed", user_id=user_id, error=message)
        if self._audit_logger:
            self._audit_logger.log_classification_failed(user_id=user_id, error_message=message)
