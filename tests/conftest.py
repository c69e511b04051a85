"""
Shared fixtures: a freshly seeded store per test and one user per role/team combination.
"""

import asyncio

import pytest

from cardpilot.agents.session import ChatSession
from cardpilot.core.approval import ApprovalWorkflow
from cardpilot.core.schema import MemberRole, Team, User
from cardpilot.core.store import seed_store


@pytest.fixture(autouse=True)
def no_show_delay(monkeypatch):
    """showTransactions resolves immediately under test."""
    monkeypatch.setenv("SHOW_TRANSACTIONS_DELAY_SEC", "0")


@pytest.fixture
def store():
    return seed_store()


@pytest.fixture
def approvals(store):
    return ApprovalWorkflow(store)


@pytest.fixture
def engineering_admin():
    return User(id="u-eng-admin", name="Ada", email="ada@example.com",
                role=MemberRole.ADMIN, team=Team.ENGINEERING)


@pytest.fixture
def executive_admin():
    return User(id="u-exec-admin", name="Eve", email="eve@example.com",
                role=MemberRole.ADMIN, team=Team.EXECUTIVE)


@pytest.fixture
def engineering_member():
    return User(id="u-eng-member", name="Max", email="max@example.com",
                role=MemberRole.MEMBER, team=Team.ENGINEERING)


@pytest.fixture
def assistant():
    return User(id="u-assistant", name="Sam", email="sam@example.com",
                role=MemberRole.ASSISTANT, team=Team.MARKETING)


@pytest.fixture
def admin_session(store, engineering_admin):
    return ChatSession(engineering_admin, store)


@pytest.fixture
def executive_session(store, executive_admin):
    return ChatSession(executive_admin, store)


@pytest.fixture
def member_session(store, engineering_member):
    return ChatSession(engineering_member, store)


@pytest.fixture
def wait_for_presented():
    """Yield control until the session has an approval in front of a human."""
    async def _wait(session, attempts: int = 100):
        for _ in range(attempts):
            pending = session.approvals.list_pending_requests(session.id)
            if pending:
                return pending[0]
            await asyncio.sleep(0)
        raise AssertionError("No approval was presented")
    return _wait
