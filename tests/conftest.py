"""Shared builders for the ledger tests."""

from typing import Optional

import pytest

from ledger.models.ledger import Session
from ledger.services.gateway import InMemoryGateway


ALICE = "user-alice"
BOB = "user-bob"
ADMIN = "user-admin"


def make_row(
    row_id: str,
    owner_id: str,
    transaction_date: str = "2024-01-15",
    amount: str = "10.00",
    description: Optional[str] = None,
    project: Optional[str] = None,
) -> dict:
    """A backend transaction row."""
    return {
        "id": row_id,
        "transaction_date": transaction_date,
        "recipient": "Recipient",
        "amount": amount,
        "creditor": "Creditor",
        "bank": "Bank",
        "description": description,
        "project": project,
        "user_id": owner_id,
    }


def make_gateway(
    session: Optional[Session] = None,
    gateway_class: type = InMemoryGateway,
) -> InMemoryGateway:
    """Two verified users with two rows each, plus a verified admin."""
    return gateway_class(
        profiles=[
            {"id": ALICE, "email": "alice@example.com", "role": "user"},
            {"id": BOB, "email": "bob@example.com", "role": "user"},
            {"id": ADMIN, "email": "admin@example.com", "role": "admin"},
        ],
        transactions=[
            make_row("a1", ALICE, "2024-01-10", "10.50", "Rent January", "Home"),
            make_row("a2", ALICE, "2024-02-01", "-3.25", "Coffee", None),
            make_row("b1", BOB, "2024-01-20", "100", "Invoice 42", "Consulting"),
            make_row("b2", BOB, "2024-03-05", "7", None, "Consulting"),
        ],
        session=session,
    )


def session_for(user_id: str) -> Session:
    return Session(user_id=user_id, email=f"{user_id}@example.com")


def valid_fields(**overrides) -> dict:
    """A complete add-transaction form."""
    fields = {
        "transaction_date": "2024-04-01",
        "amount": "42.10",
        "recipient": "Landlord",
        "creditor": "Me",
        "bank": "First Bank",
        "description": "April rent",
        "project": "Home",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def gateway() -> InMemoryGateway:
    return make_gateway()
