"""
Chat sessions - one actor, one registry snapshot, one invocation at a time.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from util.logging import logger

from ..core.approval import ApprovalWorkflow
from ..core.config import SESSION_VIEW_LIMIT
from ..core.errors import PermissionDenied, ValidationFailure
from ..core.permissions import FORBIDDEN_ACTIONS_DESCRIPTION, allowed, forbidden_permissions
from ..core.schema import User
from ..core.store import ICardStore
from .actions import ActionEnvironment, build_card_actions
from .executor import CommandExecutor, Outcome
from .registry import ActionRegistry, SessionContext

SUGGESTION_INSTRUCTIONS = """
suggest actions/information in this page related to credit cards, transactions or policies.
Use specific items or "all items", for example:
"Show all transactions of Marketing department" or "Tell me how much I spent on my Mastercard"
If the user has permission to e.g. add credit card, then you can suggest to add a new card.
Do the same for other actions.
"""


class PageOperation(str, Enum):
    """Operations a page can request through its ``operation`` property."""
    CHANGE_PIN = "change-pin"


@dataclass
class PinChangeDialog:
    """Follow-up step opened by setCardPin; the pin itself is entered by the user."""
    dialog_open: bool = False
    card_id: Optional[str] = None
    loading: bool = False

    def open(self, card_id: Optional[str] = None) -> None:
        self.dialog_open = True
        if card_id:
            self.card_id = card_id

    def reset(self) -> None:
        self.dialog_open = False
        self.card_id = None
        self.loading = False


@dataclass
class RenderedView:
    action: str
    status: str
    view: Dict[str, Any]
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "status": self.status,
            "view": self.view,
            "created_at": self.created_at.isoformat(),
        }


class ChatSession:
    """
    Binds an actor to the card store for the lifetime of a conversation.

    The action registry is derived from the current context and rebuilt by
    update_context(); closing the session cancels any approval still waiting.
    """

    def __init__(self, user: User, store: ICardStore, approvals: Optional[ApprovalWorkflow] = None,
                 properties: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None,
                 view_limit: int = SESSION_VIEW_LIMIT):
        self.id = session_id or str(uuid.uuid4())
        self.view_limit = max(1, view_limit)
        self.store = store
        self.approvals = approvals or ApprovalWorkflow(store)
        self.pin_dialog = PinChangeDialog()
        self.views: List[RenderedView] = []
        self.closed = False
        self._lock = asyncio.Lock()
        self.context = SessionContext(user=user, properties=dict(properties or {}))
        self.registry = self._build_registry()
        self.executor = CommandExecutor(lambda: self.registry, session_id=self.id, publish=self.publish)
        self._apply_page_operation()

    @property
    def user(self) -> User:
        return self.context.user

    def update_context(self, user: Optional[User] = None,
                       properties: Optional[Dict[str, Any]] = None) -> ActionRegistry:
        """Swap in a new context snapshot and rebuild the registry from it."""
        self.context = SessionContext(
            user=user or self.context.user,
            properties=dict(properties) if properties is not None else dict(self.context.properties),
        )
        self.registry = self._build_registry()
        self._apply_page_operation()
        logger.log_operation("session.context_updated", "success", {
            "session_id": self.id,
            "role": self.context.role.value,
            "available_actions": len(self.registry.list_available_actions(include_disabled=False)),
        })
        return self.registry

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Outcome:
        """Run one action; concurrent calls on the same session queue up."""
        if self.closed:
            return Outcome(action=name, success=False, message="This chat session has ended",
                           error_type="SESSION_CLOSED")
        async with self._lock:
            return await self.executor.execute(name, arguments, self.context)

    def list_actions(self, include_disabled: bool = True) -> Dict[str, Any]:
        return self.registry.list_available_actions(include_disabled=include_disabled)

    def readable_context(self) -> Dict[str, Any]:
        """What the agent may read: forbidden permission keys and suggestion guidance."""
        return {
            "forbidden_actions": {
                "description": FORBIDDEN_ACTIONS_DESCRIPTION,
                "value": forbidden_permissions(self.context.role),
            },
            "suggestions": {
                "instructions": SUGGESTION_INSTRUCTIONS,
                "min_suggestions": 3,
                "max_suggestions": 3,
            },
            "user": {
                "name": self.user.name,
                "role": self.user.role.value,
                "team": self.user.team.value,
            },
        }

    def submit_pin_change(self, pin: str, card_id: Optional[str] = None):
        """Commit the pin entered in the dialog opened by setCardPin."""
        if not allowed("SET_PIN", self.context.role):
            raise PermissionDenied("You do not have permission to change card pins")

        target = card_id or self.pin_dialog.card_id
        if not target:
            raise ValidationFailure("No card was selected for the pin change")
        if not (pin and pin.isdigit() and len(pin) == 4):
            raise ValidationFailure("The pin code must be exactly 4 digits")

        self.pin_dialog.loading = True
        try:
            card = self.store.set_pin(target, pin)
        finally:
            self.pin_dialog.reset()
        return card

    def publish(self, action: str, status: str, view: Dict[str, Any]) -> None:
        self.views.append(RenderedView(action=action, status=status, view=view))
        # Only the most recent views are kept
        if len(self.views) > self.view_limit:
            del self.views[:-self.view_limit]

    def close(self) -> int:
        """End the session; pending approvals are discarded without touching transactions."""
        self.closed = True
        cancelled = self.approvals.cancel_session(self.id)
        logger.log_operation("session.closed", "success", {
            "session_id": self.id,
            "cancelled_approvals": cancelled,
        })
        return cancelled

    def _build_registry(self) -> ActionRegistry:
        env = ActionEnvironment(
            context=self.context,
            store=self.store,
            approvals=self.approvals,
            session_id=self.id,
            publish=self.publish,
            open_pin_dialog=self.pin_dialog.open,
        )
        return ActionRegistry(build_card_actions(env), self.context)

    def _apply_page_operation(self) -> None:
        operation = self.context.properties.get("operation")
        if operation == PageOperation.CHANGE_PIN.value:
            self.pin_dialog.open()


class SessionManager:
    """Owns the live sessions of one process and the approval workflow they share."""

    def __init__(self, store: ICardStore):
        self.store = store
        self.approvals = ApprovalWorkflow(store)
        self.sessions: Dict[str, ChatSession] = {}

    def create_session(self, user: User, properties: Optional[Dict[str, Any]] = None) -> ChatSession:
        session = ChatSession(user, self.store, approvals=self.approvals, properties=properties)
        self.sessions[session.id] = session
        logger.log_operation("session.created", "success", {
            "session_id": session.id,
            "user_id": user.id,
            "role": user.role.value,
        })
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self.sessions.get(session_id)

    def close_session(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> int:
        closed = 0
        for session_id in list(self.sessions.keys()):
            if self.close_session(session_id):
                closed += 1
        return closed
