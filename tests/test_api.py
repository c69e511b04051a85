"""
HTTP API tests - sessions, action execution and approvals over FastAPI.
"""

import threading
import time

import pytest
from fastapi.testclient import TestClient

from cardpilot.agents.session import SessionManager
from cardpilot.api import main
from cardpilot.core.store import seed_store

ADMIN = {"id": "u-eng-admin", "name": "Ada", "email": "ada@example.com", "role": "admin", "team": "Engineering"}
MEMBER = {"id": "u-eng-member", "name": "Max", "email": "max@example.com", "role": "member", "team": "Engineering"}


@pytest.fixture
def manager(monkeypatch):
    """Fresh seeded store and session manager per test."""
    manager = SessionManager(seed_store())
    monkeypatch.setattr(main, "store", manager.store)
    monkeypatch.setattr(main, "sessions", manager)
    return manager


@pytest.fixture
def client(manager):
    with TestClient(main.app) as test_client:
        yield test_client


def open_session(client, user=ADMIN, properties=None):
    response = client.post("/sessions", json={"user": user, "properties": properties or {}})
    assert response.status_code == 201
    return response.json()["session_id"]


class TestSessions:
    """Test the session lifecycle endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_session_lists_actions(self, client):
        response = client.post("/sessions", json={"user": MEMBER})
        data = response.json()

        assert response.status_code == 201
        assert data["user"]["role"] == "member"
        disabled = {a["name"] for a in data["actions"] if a["disabled"]}
        assert "addNewCard" in disabled
        assert "setCardPin" not in disabled

    def test_invalid_role_is_rejected(self, client):
        response = client.post("/sessions", json={"user": {**ADMIN, "role": "owner"}})
        assert response.status_code == 422

    def test_update_context_changes_role(self, client):
        session_id = open_session(client)

        response = client.put(f"/sessions/{session_id}/context", json={"role": "member"})

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "member"
        enabled = client.get(f"/sessions/{session_id}/actions", params={"include_disabled": False}).json()
        assert "addNewCard" not in {a["name"] for a in enabled["actions"]}

    def test_readable_context(self, client):
        session_id = open_session(client, MEMBER)
        context = client.get(f"/sessions/{session_id}/context").json()
        assert "APPROVE_TRANSACTION" in context["forbidden_actions"]["value"]

    def test_unknown_session(self, client):
        assert client.get("/sessions/nope/actions").status_code == 404

    def test_shutdown_closes_open_sessions(self, manager):
        with TestClient(main.app) as test_client:
            session_id = open_session(test_client)
            assert manager.get_session(session_id) is not None

        assert manager.sessions == {}

    def test_close_session(self, client, manager):
        session_id = open_session(client)
        assert client.delete(f"/sessions/{session_id}").status_code == 200
        assert manager.get_session(session_id) is None


class TestExecute:
    """Test action execution over HTTP."""

    def test_denied_action_is_an_outcome(self, client, manager):
        session_id = open_session(client, MEMBER)

        response = client.post(f"/sessions/{session_id}/actions/addNewCard",
                               json={"arguments": {"type": "Visa", "color": "bg-blue-500", "pin": "1234"}})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error_type"] == "PERMISSION_DENIED"
        assert manager.store.mutation_count == 0

    def test_show_transactions(self, client):
        session_id = open_session(client)

        response = client.post(f"/sessions/{session_id}/actions/showTransactions",
                               json={"arguments": {"card4Digits": "1234"}})

        assert {t["id"] for t in response.json()["data"]} == {"tx-101", "tx-102"}
        views = client.get(f"/sessions/{session_id}/views").json()["views"]
        assert [v["status"] for v in views] == ["in_progress", "complete"]

    def test_set_pin_then_submit(self, client, manager):
        session_id = open_session(client, MEMBER)
        client.post(f"/sessions/{session_id}/actions/setCardPin", json={"arguments": {"cardId": "card-1"}})

        response = client.post(f"/sessions/{session_id}/pin", json={"pin": "4321"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "card_id": "card-1"}
        assert manager.store.get_card("card-1").pin == "4321"

    def test_bad_pin_is_a_400(self, client):
        session_id = open_session(client, MEMBER)
        response = client.post(f"/sessions/{session_id}/pin", json={"pin": "12", "card_id": "card-1"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "VALIDATION_FAILURE"

    def test_pin_without_permission_is_a_403(self, client):
        assistant = {**MEMBER, "id": "u-assistant", "role": "assistant"}
        session_id = open_session(client, assistant)
        response = client.post(f"/sessions/{session_id}/pin", json={"pin": "1234", "card_id": "card-1"})
        assert response.status_code == 403


class TestApprovals:
    """Test that a decision posted by the approval UI resumes the held execute call."""

    def _wait_for_approval(self, client, session_id, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            approvals = client.get("/approvals", params={"session_id": session_id}).json()["approvals"]
            if approvals:
                return approvals[0]
            time.sleep(0.01)
        raise AssertionError("No approval was presented")

    def _execute_in_background(self, client, session_id, transaction_id):
        result = {}

        def run():
            result["response"] = client.post(
                f"/sessions/{session_id}/actions/showAndApproveTransactions",
                json={"arguments": {"transactionId": transaction_id}},
            )

        thread = threading.Thread(target=run)
        thread.start()
        return thread, result

    def test_approve_resumes_execute(self, client, manager):
        session_id = open_session(client)
        thread, result = self._execute_in_background(client, session_id, "tx-101")

        approval = self._wait_for_approval(client, session_id)
        assert [t["id"] for t in approval["transactions"]] == ["tx-101"]

        response = client.post(f"/approvals/{approval['id']}/approve", json={"transaction_id": "tx-101"})
        thread.join(timeout=5)

        assert response.status_code == 200
        assert response.json()["state"] == "resolved"
        assert result["response"].json()["message"] == "transaction tx-101 approved"
        assert manager.store.get_transaction("tx-101").status.value == "approved"

    def test_second_decision_conflicts(self, client):
        session_id = open_session(client)
        thread, _ = self._execute_in_background(client, session_id, "tx-101")
        approval = self._wait_for_approval(client, session_id)

        client.post(f"/approvals/{approval['id']}/deny", json={"transaction_id": "tx-101"})
        thread.join(timeout=5)
        response = client.post(f"/approvals/{approval['id']}/approve", json={"transaction_id": "tx-101"})

        assert response.status_code == 409

    def test_empty_transaction_id(self, client):
        session_id = open_session(client)
        response = client.post(f"/sessions/{session_id}/actions/showAndApproveTransactions",
                               json={"arguments": {}})
        assert response.json()["error_type"] == "NO_PENDING_ITEM"

    def test_unknown_request(self, client):
        response = client.post("/approvals/missing/approve", json={"transaction_id": "tx-101"})
        assert response.status_code == 404

    def test_empty_decision_body_is_rejected(self, client):
        response = client.post("/approvals/missing/approve", json={"transaction_id": " "})
        assert response.status_code == 422
