"""Services package."""

from ledger.services.gateway import (
    BackendError,
    BackendGateway,
    InMemoryGateway,
    Subscription,
)

__all__ = [
    "BackendError",
    "BackendGateway",
    "InMemoryGateway",
    "Subscription",
]
