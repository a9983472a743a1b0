"""
Backend Gateway Package

Provides the abstract gateway interface and its implementations.
Supabase is the hosted backend; the in-memory gateway serves local
development and tests.
"""

from ledger.services.gateway.interface import (
    BackendError,
    BackendGateway,
    Row,
    SessionListener,
    Subscription,
)
from ledger.services.gateway.memory import InMemoryGateway

__all__ = [
    # Interface
    "BackendGateway",
    "Row",
    "SessionListener",
    "Subscription",
    # Exceptions
    "BackendError",
    # Implementations
    "InMemoryGateway",
]
