"""
Human approval of pending transactions.

Each showAndApproveTransactions call opens one ApprovalRequest. The request
presents the matched pending transactions and the calling coroutine waits
until a human approves or denies one of them. There is no timeout. The
other exits are cancellation when the hosting session closes, and every
presented transaction being settled through another request.

    awaiting_presentation -> presented -> resolved
    awaiting_presentation -> no_pending_item
    presented -> no_pending_item   (everything presented was settled elsewhere)
    presented -> cancelled
"""

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from util.logging import logger

from .config import APPROVAL_HISTORY_LIMIT
from .errors import ApprovalCancelled, InvalidStatusTransition, ValidationFailure
from .query import match_transactions_by_id
from .schema import Transaction, TransactionStatus, User
from .store import ICardStore, team_transactions

NO_TRANSACTION_ID_OUTCOME = (
    "A transaction ID was not given, could be that there arent any pending "
    "approval or there was an error"
)


class ApprovalState(str, Enum):
    AWAITING_PRESENTATION = "awaiting_presentation"
    PRESENTED = "presented"
    RESOLVED = "resolved"
    NO_PENDING_ITEM = "no_pending_item"
    CANCELLED = "cancelled"


TERMINAL_STATES = {ApprovalState.RESOLVED, ApprovalState.NO_PENDING_ITEM, ApprovalState.CANCELLED}


@dataclass
class ApprovalRequest:
    id: str
    session_id: Optional[str]
    approver: str
    transaction_argument: str
    state: ApprovalState
    created_at: datetime
    transaction_ids: List[str] = field(default_factory=list)
    decision: Optional[TransactionStatus] = None
    decided_transaction_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    outcome: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> Dict:
        """Convert to dictionary for the HTTP layer."""
        return {
            'id': self.id,
            'session_id': self.session_id,
            'approver': self.approver,
            'transaction_argument': self.transaction_argument,
            'state': self.state.value,
            'created_at': self.created_at.isoformat(),
            'transaction_ids': list(self.transaction_ids),
            'decision': self.decision.value if self.decision else None,
            'decided_transaction_id': self.decided_transaction_id,
            'decided_at': self.decided_at.isoformat() if self.decided_at else None,
            'outcome': self.outcome,
        }


@dataclass
class ApprovalInterface:
    """The two callbacks a presentation layer wires to its Approve/Deny controls."""
    request_id: str
    on_approve: Callable[[str], ApprovalRequest]
    on_deny: Callable[[str], ApprovalRequest]


def _settle(future: asyncio.Future, result: str = None, exception: Exception = None) -> None:
    if future.done():
        return
    if exception is not None:
        future.set_exception(exception)
    else:
        future.set_result(result)


class ApprovalWorkflow:
    """Tracks approval requests in memory and wakes the coroutines waiting on them."""

    def __init__(self, store: ICardStore, history_limit: int = APPROVAL_HISTORY_LIMIT):
        self._store = store
        self._requests: Dict[str, ApprovalRequest] = {}
        # Ids of terminal requests in the order they finished; the oldest are pruned first
        self._finished = deque()
        self._history_limit = max(1, history_limit)
        # Futures of coroutines currently blocked in wait_for_decision
        self._pending_promises: Dict[str, asyncio.Future] = {}

    def open_request(self, transaction_id: Optional[str], approver: User,
                     session_id: Optional[str] = None) -> ApprovalRequest:
        """Create a request and move it to presented or no_pending_item."""
        request = ApprovalRequest(
            id=str(uuid.uuid4()),
            session_id=session_id,
            approver=approver.id,
            transaction_argument=transaction_id or "",
            state=ApprovalState.AWAITING_PRESENTATION,
            created_at=datetime.now(),
        )
        self._requests[request.id] = request

        if not transaction_id:
            self._finish_without_item(request, NO_TRANSACTION_ID_OUTCOME)
            return request

        matched = match_transactions_by_id(self._visible_transactions(approver), transaction_id)
        if not matched:
            self._finish_without_item(
                request, f"No pending transaction matches {transaction_id} for {approver.team.value}"
            )
            return request

        request.transaction_ids = [t.id for t in matched]
        request.state = ApprovalState.PRESENTED
        logger.log_approval_presented(request.id, request.transaction_ids, approver.id)
        return request

    def get_request(self, request_id: str) -> Optional[ApprovalRequest]:
        return self._requests.get(request_id)

    def presented_transactions(self, request_id: str) -> List[Transaction]:
        request = self._require(request_id)
        transactions = [self._store.get_transaction(tid) for tid in request.transaction_ids]
        return [t for t in transactions if t is not None]

    def approval_interface(self, request_id: str) -> ApprovalInterface:
        self._require(request_id)
        return ApprovalInterface(
            request_id=request_id,
            on_approve=lambda transaction_id: self.approve(request_id, transaction_id),
            on_deny=lambda transaction_id: self.deny(request_id, transaction_id),
        )

    def approve(self, request_id: str, transaction_id: str) -> ApprovalRequest:
        return self.decide(request_id, transaction_id, TransactionStatus.APPROVED)

    def deny(self, request_id: str, transaction_id: str) -> ApprovalRequest:
        return self.decide(request_id, transaction_id, TransactionStatus.DENIED)

    def decide(self, request_id: str, transaction_id: str, status: TransactionStatus) -> ApprovalRequest:
        """Record the single human decision for a presented request."""
        request = self._require(request_id)
        if request.state != ApprovalState.PRESENTED:
            raise ValidationFailure(f"Approval request {request_id} is already {request.state.value}")
        if transaction_id not in request.transaction_ids:
            raise ValidationFailure(
                f"Transaction {transaction_id} is not part of approval request {request_id}"
            )

        status = TransactionStatus(status)
        try:
            self._store.set_transaction_status(transaction_id, status)
        except InvalidStatusTransition:
            # Settled through another request sharing this workflow
            return self._drop_settled(request, transaction_id)

        request.state = ApprovalState.RESOLVED
        request.decision = status
        request.decided_transaction_id = transaction_id
        request.decided_at = datetime.now()
        request.outcome = f"transaction {transaction_id} {status.value}"
        logger.log_approval_decision(request_id, transaction_id, status.value, request.approver)

        self._release(request)
        self._mark_finished(request)
        return request

    async def wait_for_decision(self, request_id: str) -> str:
        """Block until the request reaches a terminal state and return its outcome."""
        request = self._require(request_id)
        if request.state == ApprovalState.CANCELLED:
            raise ApprovalCancelled(f"Approval request {request_id} was cancelled")
        if request.is_terminal:
            return request.outcome

        future = self._pending_promises.get(request_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._pending_promises[request_id] = future
        try:
            return await future
        except asyncio.CancelledError:
            # The awaiting task itself was cancelled; drop the approval with it
            self.cancel_request(request_id, reason="caller_cancelled")
            raise

    def cancel_request(self, request_id: str, reason: str = "session_closed") -> bool:
        """Discard a request that has not been decided. Transaction state is untouched."""
        request = self._requests.get(request_id)
        if request is None or request.is_terminal:
            return False

        request.state = ApprovalState.CANCELLED
        request.outcome = "Approval was cancelled before a decision was made"
        logger.log_approval_cancelled(request_id, reason)
        self._release(request, ApprovalCancelled(f"Approval request {request_id} was cancelled"))
        self._mark_finished(request)
        return True

    def cancel_session(self, session_id: str) -> int:
        """Cancel every open request owned by a session and return how many."""
        open_ids = [
            r.id for r in self._requests.values()
            if r.session_id == session_id and not r.is_terminal
        ]
        return sum(1 for request_id in open_ids if self.cancel_request(request_id))

    def list_pending_requests(self, session_id: Optional[str] = None) -> List[ApprovalRequest]:
        """List requests still waiting for a human."""
        return [
            r for r in self._requests.values()
            if r.state == ApprovalState.PRESENTED and (session_id is None or r.session_id == session_id)
        ]

    def _visible_transactions(self, approver: User) -> List[Transaction]:
        # Department admins act on their own team's cards; Executive sees every team
        return team_transactions(self._store, approver.team)

    def _finish_without_item(self, request: ApprovalRequest, outcome: str) -> None:
        request.state = ApprovalState.NO_PENDING_ITEM
        request.outcome = outcome
        logger.log_operation("approval.no_pending_item", "empty", {
            "request_id": request.id,
            "transaction_argument": request.transaction_argument
        })
        self._mark_finished(request)

    def _drop_settled(self, request: ApprovalRequest, transaction_id: str) -> ApprovalRequest:
        settled = self._store.get_transaction(transaction_id)
        request.transaction_ids = [
            t.id for t in self.presented_transactions(request.id)
            if t.status == TransactionStatus.PENDING
        ]
        if request.transaction_ids:
            raise InvalidStatusTransition(
                f"Transaction {transaction_id} is already {settled.status.value}"
            )

        self._finish_without_item(request, f"transaction {transaction_id} is already {settled.status.value}")
        self._release(request)
        return request

    def _mark_finished(self, request: ApprovalRequest) -> None:
        self._finished.append(request.id)
        while len(self._finished) > self._history_limit:
            self._requests.pop(self._finished.popleft(), None)

    def _release(self, request: ApprovalRequest, exception: Exception = None) -> None:
        future = self._pending_promises.pop(request.id, None)
        if future is None or future.done():
            return

        loop = future.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            _settle(future, request.outcome, exception)
        else:
            loop.call_soon_threadsafe(_settle, future, request.outcome, exception)

    def _require(self, request_id: str) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise ValidationFailure(f"Approval request {request_id} was not found")
        return request


def render_approval(request: Optional[ApprovalRequest], transactions: List[Transaction],
                    in_progress: bool = False) -> Dict:
    """View model for the approval flow: loading, empty state or the transaction list."""
    if in_progress or request is None:
        return {"kind": "loading", "text": "Loading..."}
    if request.state == ApprovalState.NO_PENDING_ITEM:
        return {"kind": "empty", "text": "No pending transactions", "request_id": request.id}
    return {
        "kind": "transactions",
        "request_id": request.id,
        "state": request.state.value,
        "show_approval_interface": request.state == ApprovalState.PRESENTED,
        "transactions": [t.to_dict() for t in transactions],
    }
