"""Session resolution and authorization package."""

from ledger.auth.classifier import AuthorizationClassifier, resolve_state
from ledger.auth.resolver import SessionResolver, StateListener

__all__ = [
    "AuthorizationClassifier",
    "SessionResolver",
    "StateListener",
    "resolve_state",
]
