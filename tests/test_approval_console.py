"""
Approval console tests - API client calls and row formatting.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from tui.approvals import ApprovalApiClient, format_transaction_line, pending_decisions
from tui.main import ApprovalConsoleApp

APPROVAL = {
    "id": "req-1",
    "state": "presented",
    "transactions": [
        {"id": "tx-101", "title": "GitHub Copilot seats", "amount": 1900.0, "status": "pending"},
        {"id": "tx-103", "title": "Conference booth", "amount": 4500, "status": "pending"},
    ],
}


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(http):
    return ApprovalApiClient(base_url="http://api.test/", timeout=2.0, session=http)


class TestApprovalApiClient:
    """Test the HTTP calls made on behalf of the approver."""

    def test_list_pending(self, client, http):
        http.get.return_value.json.return_value = {"approvals": [APPROVAL]}

        assert client.list_pending() == [APPROVAL]
        http.get.assert_called_once_with("http://api.test/approvals", timeout=2.0)

    def test_approve_posts_transaction_id(self, client, http):
        http.post.return_value.status_code = 200
        http.post.return_value.json.return_value = {"outcome": "transaction tx-101 approved"}

        result = client.approve("req-1", "tx-101")

        assert result["outcome"] == "transaction tx-101 approved"
        http.post.assert_called_once_with(
            "http://api.test/approvals/req-1/approve", json={"transaction_id": "tx-101"}, timeout=2.0
        )

    def test_deny_uses_deny_endpoint(self, client, http):
        http.post.return_value.status_code = 200
        client.deny("req-1", "tx-103")
        assert http.post.call_args[0][0] == "http://api.test/approvals/req-1/deny"

    def test_conflict_raises(self, client, http):
        http.post.return_value.status_code = 409
        http.post.return_value.raise_for_status.side_effect = requests.HTTPError("409 Conflict")

        with pytest.raises(requests.HTTPError):
            client.approve("req-1", "tx-101")


class TestFormatting:
    """Test how rows are rendered in the console."""

    def test_transaction_line(self):
        line = format_transaction_line(APPROVAL["transactions"][0])
        assert line.startswith("tx-101")
        assert "GitHub Copilot seats" in line
        assert "$  1,900.00" in line
        assert line.endswith("[pending]")

    def test_long_titles_are_cut(self):
        line = format_transaction_line({"id": "tx-1", "title": "x" * 60, "amount": 1, "status": "pending"})
        assert "x" * 41 not in line

    def test_pending_decisions_flattens_rows(self):
        rows = pending_decisions([APPROVAL])
        assert [(r["request_id"], r["transaction_id"]) for r in rows] == [("req-1", "tx-101"), ("req-1", "tx-103")]

    def test_no_approvals(self):
        assert pending_decisions([]) == []


def test_console_uses_given_client(client):
    app = ApprovalConsoleApp(client=client, refresh_sec=0.5)
    assert app.client is client
    assert app.refresh_sec == 0.5
    assert app.rows == []


class RecordingClient:
    """Approval client double that records which thread each call ran on."""

    base_url = "http://api.test"

    def __init__(self, approvals=None):
        self.approvals = approvals or []
        self.calls = []

    def list_pending(self):
        self.calls.append(("list", threading.current_thread()))
        return self.approvals

    def approve(self, request_id, transaction_id):
        self.calls.append(("approve", threading.current_thread()))
        self.approvals = []
        return {"outcome": f"transaction {transaction_id} approved"}

    def deny(self, request_id, transaction_id):
        self.calls.append(("deny", threading.current_thread()))
        self.approvals = []
        return {"outcome": f"transaction {transaction_id} denied"}


async def settle(pilot, condition, attempts=50):
    """Give the console a few frames to finish its off-loop calls."""
    for _ in range(attempts):
        await pilot.pause(0.01)
        if condition():
            return


class TestConsoleEventLoop:
    """Test that HTTP calls never run on the console's event loop."""

    @pytest.mark.asyncio
    async def test_refresh_runs_off_the_loop(self):
        fake = RecordingClient([APPROVAL])
        app = ApprovalConsoleApp(client=fake, refresh_sec=60)

        async with app.run_test() as pilot:
            await settle(pilot, lambda: app.rows)
            loop_thread = threading.current_thread()

            assert [r["transaction_id"] for r in app.rows] == ["tx-101", "tx-103"]
            assert fake.calls
            assert all(thread is not loop_thread for _, thread in fake.calls)

    @pytest.mark.asyncio
    async def test_approve_button_runs_off_the_loop(self):
        fake = RecordingClient([APPROVAL])
        app = ApprovalConsoleApp(client=fake, refresh_sec=60)

        async with app.run_test() as pilot:
            await settle(pilot, lambda: app.rows)
            await pilot.click("#approve-0")
            await settle(pilot, lambda: not app.rows)
            loop_thread = threading.current_thread()

            decisions = [(name, thread) for name, thread in fake.calls if name == "approve"]
            assert len(decisions) == 1
            assert decisions[0][1] is not loop_thread
            assert app.rows == []

    @pytest.mark.asyncio
    async def test_overlapping_refresh_is_skipped(self):
        fake = RecordingClient()
        app = ApprovalConsoleApp(client=fake, refresh_sec=60)

        async with app.run_test() as pilot:
            await pilot.pause()
            calls_before = len(fake.calls)
            app._refreshing = True
            await app.refresh_approvals()

            assert len(fake.calls) == calls_before
