"""
Role-based permission table and the evaluator that reads it.

The table is fixed at import time. Lookups are pure and fail closed: a key that
is not in the table, or an action that maps to no key, is never allowed.
"""

from typing import Dict, List, Optional, Union

from .schema import MemberRole

PERMISSIONS: Dict[str, List[MemberRole]] = {
    "READ_MSA": [MemberRole.ADMIN, MemberRole.ASSISTANT],
    "ADD_CARD": [MemberRole.ADMIN],
    "ADD_POLICY": [MemberRole.ADMIN],
    "ADD_NOTE": [MemberRole.ADMIN, MemberRole.ASSISTANT, MemberRole.MEMBER],
    "SHOW_TRANSACTIONS": [MemberRole.ADMIN, MemberRole.ASSISTANT, MemberRole.MEMBER],
    "SET_PIN": [MemberRole.ADMIN, MemberRole.MEMBER],
    "APPROVE_TRANSACTION": [MemberRole.ADMIN],
}

# Which permission key gates each agent-callable action
ACTION_PERMISSIONS: Dict[str, str] = {
    "addNewCard": "ADD_CARD",
    "assignPolicyToCard": "ADD_POLICY",
    "addNoteToTransaction": "ADD_NOTE",
    "showTransactions": "SHOW_TRANSACTIONS",
    "setCardPin": "SET_PIN",
    "showAndApproveTransactions": "APPROVE_TRANSACTION",
    "queryVendorMSA": "READ_MSA",
}

# Shown to the agent next to the list of forbidden keys
FORBIDDEN_ACTIONS_DESCRIPTION = (
    "The user does not have permission to perform these actions. "
    "If they ask you to do one of these, please tell them that they "
    "do not have permission to do so. "
    "Do not tell them they are on the wrong page, the real reason "
    "is that they do not have permission to perform the action."
)


def _coerce_role(role: Union[MemberRole, str, None]) -> Optional[MemberRole]:
    if isinstance(role, MemberRole):
        return role
    try:
        return MemberRole(role)
    except ValueError:
        return None


def allowed(permission_key: str, role: Union[MemberRole, str, None]) -> bool:
    """Return True if ``role`` appears in the permission list for ``permission_key``."""
    member_role = _coerce_role(role)
    if member_role is None:
        return False
    return member_role in PERMISSIONS.get(permission_key, [])


def permission_for_action(action_name: str) -> Optional[str]:
    return ACTION_PERMISSIONS.get(action_name)


def forbidden_permissions(role: Union[MemberRole, str, None]) -> List[str]:
    """Permission keys the role lacks, in table order."""
    return [key for key in PERMISSIONS if not allowed(key, role)]
