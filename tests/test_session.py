"""
Chat session tests - context rebuilds, readable context, pin dialog and session management.
"""

import pytest

from cardpilot.agents.session import ChatSession, PageOperation, SessionManager
from cardpilot.core.errors import PermissionDenied, ValidationFailure
from cardpilot.core.permissions import FORBIDDEN_ACTIONS_DESCRIPTION


class TestContext:
    """Test registry rebuilds on context change."""

    def test_update_context_rebuilds_registry(self, admin_session, engineering_member):
        old_registry = admin_session.registry

        new_registry = admin_session.update_context(user=engineering_member)

        assert new_registry is not old_registry
        assert admin_session.registry is new_registry
        assert new_registry.resolve("addNewCard").disabled is True
        assert old_registry.resolve("addNewCard").disabled is False

    def test_properties_are_kept_when_only_user_changes(self, store, engineering_admin, engineering_member):
        session = ChatSession(engineering_admin, store, properties={"page": "cards"})
        session.update_context(user=engineering_member)
        assert session.context.properties == {"page": "cards"}

    def test_list_actions_hides_disabled_on_request(self, member_session):
        enabled = member_session.list_actions(include_disabled=False)
        assert "addNewCard" not in enabled
        assert "showTransactions" in enabled
        assert "addNewCard" in member_session.list_actions()


class TestReadableContext:
    """Test what the agent is allowed to read."""

    def test_member_forbidden_actions(self, member_session):
        context = member_session.readable_context()

        assert context["forbidden_actions"]["description"] == FORBIDDEN_ACTIONS_DESCRIPTION
        assert "ADD_CARD" in context["forbidden_actions"]["value"]
        assert "SET_PIN" not in context["forbidden_actions"]["value"]

    def test_suggestions_and_user(self, admin_session):
        context = admin_session.readable_context()

        assert context["suggestions"]["min_suggestions"] == 3
        assert context["suggestions"]["max_suggestions"] == 3
        assert context["user"] == {"name": "Ada", "role": "admin", "team": "Engineering"}
        assert context["forbidden_actions"]["value"] == []

    def test_follows_role_change(self, admin_session, assistant):
        admin_session.update_context(user=assistant)
        assert "SET_PIN" in admin_session.readable_context()["forbidden_actions"]["value"]


class TestPinChange:
    """Test the dialog opened by setCardPin and the pin it commits."""

    def test_submit_pin_after_dialog(self, member_session, store):
        member_session.pin_dialog.open("card-1")

        card = member_session.submit_pin_change("9876")

        assert card.pin == "9876"
        assert member_session.pin_dialog.dialog_open is False
        assert member_session.pin_dialog.card_id is None
        assert store.mutation_count == 1

    @pytest.mark.parametrize("pin", ["", "123", "12345", "abcd"])
    def test_pin_must_be_four_digits(self, member_session, store, pin):
        member_session.pin_dialog.open("card-1")
        with pytest.raises(ValidationFailure):
            member_session.submit_pin_change(pin)
        assert store.mutation_count == 0

    def test_no_card_selected(self, member_session):
        with pytest.raises(ValidationFailure):
            member_session.submit_pin_change("1234")

    def test_assistant_cannot_set_pin(self, store, assistant):
        session = ChatSession(assistant, store)
        with pytest.raises(PermissionDenied):
            session.submit_pin_change("1234", card_id="card-2")
        assert store.get_card("card-2").pin != "1234"

    def test_change_pin_operation_opens_dialog(self, store, engineering_member):
        session = ChatSession(engineering_member, store,
                              properties={"operation": PageOperation.CHANGE_PIN.value})
        assert session.pin_dialog.dialog_open is True

    def test_change_pin_operation_on_context_update(self, member_session):
        member_session.update_context(properties={"operation": "change-pin"})
        assert member_session.pin_dialog.dialog_open is True


class TestSessionManager:
    """Test session bookkeeping."""

    @pytest.fixture
    def manager(self, store):
        return SessionManager(store)

    def test_sessions_share_one_approval_workflow(self, manager, engineering_admin, executive_admin):
        first = manager.create_session(engineering_admin)
        second = manager.create_session(executive_admin)

        assert first.approvals is second.approvals is manager.approvals
        assert manager.get_session(first.id) is first

    def test_close_session(self, manager, engineering_admin):
        session = manager.create_session(engineering_admin)

        assert manager.close_session(session.id) is True
        assert session.closed is True
        assert manager.get_session(session.id) is None
        assert manager.close_session(session.id) is False

    def test_close_all(self, manager, engineering_admin, engineering_member):
        manager.create_session(engineering_admin)
        manager.create_session(engineering_member)

        assert manager.close_all() == 2
        assert manager.sessions == {}
