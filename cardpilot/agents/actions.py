"""
Card page actions callable by the agent.

build_card_actions() is a pure function of the session environment; call it
again whenever the role or page properties change.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..core.approval import ApprovalState, ApprovalWorkflow, render_approval
from ..core.config import show_transactions_delay
from ..core.documents import find_vendor_msa
from ..core.errors import NoPendingItem, ValidationFailure
from ..core.permissions import permission_for_action
from ..core.query import TransactionCriteria, filter_transactions
from ..core.schema import CardType, NewCardRequest
from ..core.store import ICardStore, team_transactions
from .registry import ActionDefinition, ActionParameter, ActionResult, ExecutionMode, SessionContext

APPROVAL_DESCRIPTION = """
This operation is per department.
An executive department admin is allowed to approve/deny from other departments as well

Show the unapproved transactions and allow the admin per department to approve them.

Transactions will be presented to the admin one by one
"""


def _no_publish(action: str, status: str, view: Dict[str, Any]) -> None:
    pass


def _no_dialog(card_id: str) -> None:
    pass


@dataclass
class ActionEnvironment:
    """Everything a handler may touch for one session."""
    context: SessionContext
    store: ICardStore
    approvals: ApprovalWorkflow
    session_id: Optional[str] = None
    publish: Callable[[str, str, Dict[str, Any]], None] = _no_publish
    open_pin_dialog: Callable[[str], None] = _no_dialog


def _parse_card_type(value: str) -> CardType:
    try:
        return CardType(value.strip().lower())
    except ValueError:
        raise ValidationFailure(f"Card type must be Visa or Mastercard, got '{value}'")


def render_transactions(status: str, arguments: Dict[str, Any], data: Any = None) -> Dict[str, Any]:
    if status == "in_progress":
        return {"kind": "loading", "text": "Loading..."}
    if data is None:
        return {"kind": "error", "text": "Problem fetching transactions"}
    return {"kind": "transactions", "compact": True, "transactions": data}


def render_approval_result(status: str, arguments: Dict[str, Any], data: Any = None) -> Dict[str, Any]:
    if status == "in_progress":
        return render_approval(None, [], in_progress=True)
    if not data:
        return {"kind": "empty", "text": "No pending transactions"}
    return {
        "kind": "resolved",
        "request_id": data["id"],
        "transaction_id": data["decided_transaction_id"],
        "decision": data["decision"],
        "text": data["outcome"],
    }


def build_card_actions(env: ActionEnvironment) -> List[ActionDefinition]:
    """Construct every card page action bound to ``env``."""
    store = env.store
    user = env.context.user

    async def add_new_card(type: str, color: str, pin: str) -> ActionResult:
        card_type = _parse_card_type(type)
        if not (pin.isdigit() and len(pin) == 4):
            raise ValidationFailure("The pin code must be exactly 4 digits")

        card = store.create_card(NewCardRequest(type=card_type, color=color, pin=pin, team=user.team))
        return ActionResult(
            f"Added a new {card.type.value} card ending in {card.last4}",
            card.to_dict(),
        )

    async def assign_policy_to_card(cardId: str, policyType: str) -> ActionResult:
        policy = next((p for p in store.list_policies() if p.type == policyType), None)
        if policy is None:
            raise ValidationFailure("Could not find matching policy to assign")

        card = store.assign_policy(cardId, policy.id)
        return ActionResult(f"Assigned the {policy.type} policy to card {card.id}", card.to_dict())

    async def add_note_to_transaction(transactionId: str, content: str) -> ActionResult:
        transaction = store.add_note(transactionId, content)
        return ActionResult(f"Added a note to transaction {transaction.id}", transaction.to_dict())

    async def show_transactions(**arguments) -> ActionResult:
        # Held back on purpose so the UI shows its loading state
        await asyncio.sleep(show_transactions_delay())

        criteria = TransactionCriteria.from_arguments(arguments)
        matched = filter_transactions(
            team_transactions(store, user.team), store.list_cards(team=user.team), criteria
        )
        return ActionResult(
            f"Showing {len(matched)} transaction(s)",
            [t.to_dict() for t in matched],
        )

    async def set_card_pin(cardId: str) -> ActionResult:
        if not any(c.id == cardId for c in store.list_cards(team=user.team)):
            raise ValidationFailure(f"Card {cardId} was not found")

        env.open_pin_dialog(cardId)
        return ActionResult(
            f"Opened the pin change dialog for card {cardId}; the user will enter the new pin there",
            {"card_id": cardId, "dialog_open": True},
        )

    async def show_and_approve_transactions(transactionId: str = None) -> ActionResult:
        request = env.approvals.open_request(transactionId, user, session_id=env.session_id)
        presented = env.approvals.presented_transactions(request.id)
        env.publish("showAndApproveTransactions", request.state.value, render_approval(request, presented))

        if request.state == ApprovalState.NO_PENDING_ITEM:
            raise NoPendingItem(request.outcome)

        outcome = await env.approvals.wait_for_decision(request.id)
        if request.state == ApprovalState.NO_PENDING_ITEM:
            # Everything presented was settled through another request meanwhile
            env.publish("showAndApproveTransactions", request.state.value, render_approval(request, []))
            raise NoPendingItem(outcome)
        return ActionResult(outcome, request.to_dict())

    async def query_vendor_msa(vendorName: str) -> ActionResult:
        document = find_vendor_msa(vendorName)
        if document is None:
            raise ValidationFailure(f"No MSA document is on file for {vendorName}")
        return ActionResult(document, {"vendor": vendorName})

    return [
        ActionDefinition(
            name="addNewCard",
            description="Add new credit card",
            permission_key=permission_for_action("addNewCard"),
            parameters=[
                ActionParameter("type", "The type of the card (set by user), Visa or Mastercard"),
                ActionParameter(
                    "color",
                    "The color of the card (generated by copilot, bg-blue-500 for visa, "
                    "bg-red-500 for mastercard)",
                ),
                ActionParameter("pin", "The pin code of the card (set by user), 4 digits"),
            ],
            handler=add_new_card,
        ),
        ActionDefinition(
            name="assignPolicyToCard",
            description="Assign a policy to a card",
            permission_key=permission_for_action("assignPolicyToCard"),
            parameters=[
                ActionParameter("cardId", "The card (from existing) to assign policy to"),
                ActionParameter("policyType", "The type of the policy to use"),
            ],
            handler=assign_policy_to_card,
        ),
        ActionDefinition(
            name="addNoteToTransaction",
            description="Add note to transaction",
            permission_key=permission_for_action("addNoteToTransaction"),
            parameters=[
                ActionParameter("transactionId", "The transaction to add note to (ID provided by copilot)"),
                ActionParameter("content", "The content of the note"),
            ],
            handler=add_note_to_transaction,
        ),
        ActionDefinition(
            name="showTransactions",
            description=(
                "Displays a list of transactions upon request. "
                "At least one parameter is required per request"
            ),
            permission_key=permission_for_action("showTransactions"),
            parameters=[
                ActionParameter("card4Digits", "the last 4 digits of the card", required=False),
                ActionParameter("policyId", "the id of the policy (figured out by copilot)", required=False),
                ActionParameter("transactionTitle", "the title of the transaction", required=False),
            ],
            handler=show_transactions,
            render=render_transactions,
            follow_up=False,
        ),
        ActionDefinition(
            name="setCardPin",
            description="Set the pin code of an existing card",
            permission_key=permission_for_action("setCardPin"),
            parameters=[
                ActionParameter("cardId", "The id of the card (provided by copilot)"),
            ],
            handler=set_card_pin,
        ),
        ActionDefinition(
            name="showAndApproveTransactions",
            description=APPROVAL_DESCRIPTION,
            permission_key=permission_for_action("showAndApproveTransactions"),
            parameters=[
                ActionParameter(
                    "transactionId",
                    "The id of pending transaction to present to the given department admin "
                    "(provided by copilot)",
                ),
            ],
            handler=show_and_approve_transactions,
            mode=ExecutionMode.SUSPEND_FOR_APPROVAL,
            render=render_approval_result,
        ),
        ActionDefinition(
            name="queryVendorMSA",
            description=(
                "Query MSA documents for a specific vendor. "
                "Call this if the user has any question specific to a vendor."
            ),
            permission_key=permission_for_action("queryVendorMSA"),
            parameters=[
                ActionParameter("vendorName", "The name of the vendor"),
            ],
            handler=query_vendor_msa,
        ),
    ]
