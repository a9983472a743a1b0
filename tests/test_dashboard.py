"""
Integration tests for the dashboard facade.

Runs the full stack (resolver, classifier, repository, filters) against the
in-memory backend.
"""

import asyncio
from decimal import Decimal

import pytest

from ledger.context import LedgerContext
from ledger.dashboard import (
    BACKEND_ERROR_MESSAGE,
    DUPLICATE_EMAIL_MESSAGE,
    LedgerDashboard,
)
from ledger.models.audit import AuditEventType
from ledger.models.ledger import ApplicationState
from ledger.repository.transactions import UNVERIFIED_MESSAGE
from ledger.services.gateway import InMemoryGateway
from tests.conftest import ADMIN, ALICE, BOB, make_gateway, session_for, valid_fields


async def start_dashboard(gateway):
    context = LedgerContext(gateway)
    dashboard = LedgerDashboard(context)
    await context.init()
    await dashboard.settle()
    return context, dashboard


async def settle(dashboard):
    # Gateway callbacks are delivered via call_soon
    for _ in range(5):
        await asyncio.sleep(0)
    await dashboard.settle()


def event_types(context):
    return [e.event_type for e in context.audit_logger.history]


class SlowListGateway(InMemoryGateway):
    """Listing a gated owner's rows waits until the gate opens."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gates: dict[str, asyncio.Event] = {}

    async def list_transactions(self, scope):
        gate = self.gates.get(scope.owner_id)
        if gate is not None:
            await gate.wait()
        return await super().list_transactions(scope)


async def spin(times: int = 20) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class TestDashboardSession:
    """Tests for how the dashboard follows the session."""

    def test_loading_before_init(self):
        dashboard = LedgerDashboard(LedgerContext(make_gateway()))
        assert dashboard.view().state == ApplicationState.LOADING

    @pytest.mark.asyncio
    async def test_signed_out(self):
        context, dashboard = await start_dashboard(make_gateway())
        view = dashboard.view()
        assert view.state == ApplicationState.UNAUTHENTICATED
        assert view.transactions == []
        assert "list_transactions" not in context.gateway.calls
        context.teardown()

    @pytest.mark.asyncio
    async def test_user_sees_own_rows_and_total(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ALICE)))
        view = dashboard.view()
        assert view.state == ApplicationState.AUTHENTICATED_USER
        assert [t.id for t in view.transactions] == ["a2", "a1"]
        assert view.total == Decimal("7.25")
        assert view.formatted_total == "#7.25"
        assert view.users == []
        context.teardown()

    @pytest.mark.asyncio
    async def test_admin_sees_everything_and_user_picker(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ADMIN)))
        view = dashboard.view()
        assert view.is_admin
        assert view.count == 4
        assert {u.id for u in view.users} == {ALICE, BOB, ADMIN}
        context.teardown()

    @pytest.mark.asyncio
    async def test_malformed_profile_skipped_in_user_picker(self):
        class BrokenProfileGateway(InMemoryGateway):
            async def list_profiles(self):
                rows = await super().list_profiles()
                return rows + [{"email": "no-id@example.com"}, {"id": "", "email": None}]

        gateway = make_gateway(session_for(ADMIN), gateway_class=BrokenProfileGateway)
        context, dashboard = await start_dashboard(gateway)
        assert await dashboard.load_users()
        assert {u.id for u in dashboard.view().users} == {ALICE, BOB, ADMIN}
        context.teardown()

    @pytest.mark.asyncio
    async def test_sign_out_clears_rows(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ALICE)))
        assert await dashboard.sign_out()
        await settle(dashboard)

        view = dashboard.view()
        assert view.state == ApplicationState.UNAUTHENTICATED
        assert view.transactions == []
        assert context.repository.transactions == []
        assert AuditEventType.SIGNED_OUT in event_types(context)
        context.teardown()

    @pytest.mark.asyncio
    async def test_sign_in_triggers_refresh(self):
        gateway = make_gateway()
        context, dashboard = await start_dashboard(gateway)
        gateway.emit(session_for(BOB))
        await settle(dashboard)
        assert [t.id for t in dashboard.view().transactions] == ["b2", "b1"]
        context.teardown()

    @pytest.mark.asyncio
    async def test_slow_refresh_for_previous_user_is_discarded(self):
        """Test that Alice's late rows never replace Bob's after a user switch."""
        gateway = make_gateway(session_for(ALICE), gateway_class=SlowListGateway)
        gateway.gates[ALICE] = asyncio.Event()
        context = LedgerContext(gateway)
        dashboard = LedgerDashboard(context)
        await context.init()
        await spin()

        gateway.emit(session_for(BOB))
        await spin()
        assert [t.owner_id for t in dashboard.view().transactions] == [BOB, BOB]

        gateway.gates[ALICE].set()
        await dashboard.settle()

        view = dashboard.view()
        assert view.email == "user-bob@example.com"
        assert [t.id for t in view.transactions] == ["b2", "b1"]
        assert all(t.owner_id == BOB for t in context.repository.transactions)
        context.teardown()

    @pytest.mark.asyncio
    async def test_write_refetch_for_previous_user_is_discarded(self):
        """Test that a re-fetch finishing after a user switch is not applied."""
        gateway = make_gateway(session_for(ALICE), gateway_class=SlowListGateway)
        context, dashboard = await start_dashboard(gateway)

        gateway.gates[ALICE] = asyncio.Event()
        delete = asyncio.ensure_future(dashboard.delete_transaction("a1"))
        await spin()
        gateway.emit(session_for(BOB))
        await spin()

        gateway.gates[ALICE].set()
        assert await delete
        await dashboard.settle()
        assert [t.id for t in dashboard.view().transactions] == ["b2", "b1"]
        assert dashboard.error is None
        context.teardown()

    @pytest.mark.asyncio
    async def test_user_view_never_shows_foreign_rows(self):
        """Test that a held list wider than the caller's scope is narrowed."""
        context, dashboard = await start_dashboard(make_gateway(session_for(ALICE)))
        await context.repository.list_transactions(ApplicationState.AUTHENTICATED_ADMIN, ADMIN)
        assert len(context.repository.transactions) == 4
        assert {t.owner_id for t in dashboard.view().transactions} == {ALICE}
        context.teardown()

    @pytest.mark.asyncio
    async def test_teardown_releases_subscription(self):
        gateway = make_gateway(session_for(ALICE))
        context, dashboard = await start_dashboard(gateway)
        context.teardown()
        context.teardown()
        dashboard.close()
        assert gateway.listener_count == 0


class TestDashboardOperations:
    """Tests for add/delete/filter and error surfacing."""

    @pytest.mark.asyncio
    async def test_filters_apply_to_view(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ADMIN)))
        dashboard.set_criteria(project_substring="consult")
        view = dashboard.view()
        assert {t.id for t in view.transactions} == {"b1", "b2"}
        assert view.total == Decimal("107")
        assert view.filter_description == "Transactions in project 'consult'"

        dashboard.set_criteria(start_date="2024-03-01")
        assert [t.id for t in dashboard.view().transactions] == ["b2"]

        dashboard.clear_criteria()
        assert dashboard.view().count == 4
        context.teardown()

    @pytest.mark.asyncio
    async def test_invalid_amount_shows_message_then_clears(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ALICE)))
        assert not await dashboard.add_transaction(valid_fields(amount="abc"))
        assert dashboard.view().error.startswith("Amount must be a number")
        assert "insert_transaction" not in context.gateway.calls

        assert await dashboard.add_transaction(valid_fields())
        view = dashboard.view()
        assert view.error is None
        assert view.count == 3
        context.teardown()

    @pytest.mark.asyncio
    async def test_admin_must_pick_a_user(self):
        context, dashboard = await start_dashboard(make_gateway(session_for(ADMIN)))
        assert not await dashboard.add_transaction(valid_fields())
        assert dashboard.error == "Admin must select a user"

        assert await dashboard.add_transaction(valid_fields(), target_user_id=ALICE)
        alice_rows = [t for t in dashboard.view().transactions if t.owner_id == ALICE]
        assert len(alice_rows) == 3
        context.teardown()

    @pytest.mark.asyncio
    async def test_unverified_user_cannot_add(self):
        context, dashboard = await start_dashboard(make_gateway(session_for("newcomer")))
        assert dashboard.view().state == ApplicationState.AUTHENTICATED_UNVERIFIED
        assert not await dashboard.add_transaction(valid_fields())
        assert dashboard.error == UNVERIFIED_MESSAGE
        context.teardown()

    @pytest.mark.asyncio
    async def test_backend_error_is_generic_and_audited(self):
        gateway = make_gateway(session_for(ALICE))
        context, dashboard = await start_dashboard(gateway)
        gateway.fail_operations.add("insert_transaction")
        assert not await dashboard.add_transaction(valid_fields())
        assert dashboard.error == BACKEND_ERROR_MESSAGE
        assert AuditEventType.BACKEND_ERROR in event_types(context)
        assert dashboard.view().count == 2
        context.teardown()

    @pytest.mark.asyncio
    async def test_refresh_failure_then_recovery(self):
        gateway = make_gateway(session_for(ALICE))
        context, dashboard = await start_dashboard(gateway)
        gateway.fail_operations.add("list_transactions")
        assert not await dashboard.refresh()
        assert dashboard.error == BACKEND_ERROR_MESSAGE

        gateway.fail_operations.clear()
        assert await dashboard.refresh()
        assert dashboard.error is None
        context.teardown()

    @pytest.mark.asyncio
    async def test_delete_foreign_row_is_quiet(self):
        gateway = make_gateway(session_for(ALICE))
        context, dashboard = await start_dashboard(gateway)
        assert await dashboard.delete_transaction("b1")
        assert dashboard.error is None
        assert dashboard.view().count == 2

        assert await dashboard.delete_transaction("a1")
        assert [t.id for t in dashboard.view().transactions] == ["a2"]
        context.teardown()


class TestDashboardSignUp:
    """Tests for registration."""

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self):
        context, dashboard = await start_dashboard(make_gateway())
        assert not await dashboard.sign_up("alice@example.com", "secret123")
        assert dashboard.error == DUPLICATE_EMAIL_MESSAGE
        assert "sign_up" not in context.gateway.calls
        assert AuditEventType.SIGNUP_REJECTED in event_types(context)
        context.teardown()

    @pytest.mark.asyncio
    async def test_new_email_accepted(self):
        context, dashboard = await start_dashboard(make_gateway())
        assert await dashboard.sign_up("  carol@example.com ", "secret123")
        view = dashboard.view()
        assert view.error is None
        assert view.notice
        assert view.state == ApplicationState.UNAUTHENTICATED
        assert AuditEventType.SIGNUP_REQUESTED in event_types(context)
        context.teardown()

    @pytest.mark.asyncio
    async def test_missing_password(self):
        context, dashboard = await start_dashboard(make_gateway())
        assert not await dashboard.sign_up("carol@example.com", "")
        assert dashboard.error
        assert context.gateway.calls == ["get_session"]
        context.teardown()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
