"""
Action definitions and the per-context registry the executor resolves against.

A registry is a snapshot: it is rebuilt from scratch whenever the session's
role or contextual properties change and is never mutated in place.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.errors import ActionNotFound, ValidationFailure
from ..core.permissions import allowed
from ..core.schema import MemberRole, User


class ExecutionMode(str, Enum):
    DIRECT = "direct"
    SUSPEND_FOR_APPROVAL = "suspend_for_approval"


@dataclass
class ActionParameter:
    name: str
    description: str = ""
    type: str = "string"
    required: bool = True


@dataclass
class ActionResult:
    """What a handler hands back: the sentence for the agent plus optional data."""
    message: str
    data: Any = None


@dataclass
class ActionDefinition:
    name: str
    description: str
    parameters: List[ActionParameter]
    permission_key: str
    handler: Callable[..., Awaitable[ActionResult]]
    mode: ExecutionMode = ExecutionMode.DIRECT
    render: Optional[Callable[..., Dict[str, Any]]] = None
    disabled: bool = False
    follow_up: bool = True

    def validate_arguments(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Keep declared parameters only, coerce them to strings and check required ones.

        Suspend-mode actions receive missing arguments as None; an absent
        transaction id is a legitimate state of the approval flow there.
        """
        validated = {}
        for param in self.parameters:
            value = arguments.get(param.name)
            if value is not None and not isinstance(value, str):
                value = str(value)
            if isinstance(value, str):
                value = value.strip()

            if not value:
                if param.required and self.mode == ExecutionMode.DIRECT:
                    raise ValidationFailure(
                        f"Required parameter '{param.name}' missing for action '{self.name}'"
                    )
                value = None
            validated[param.name] = value
        return validated

    def to_schema(self) -> Dict[str, Any]:
        """The agent-facing contract for this action."""
        return {
            "name": self.name,
            "description": self.description,
            "mode": self.mode.value,
            "disabled": self.disabled,
            "follow_up": self.follow_up,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                }
                for p in self.parameters
            ],
        }


@dataclass
class SessionContext:
    """Who is acting and what the surrounding page told us."""
    user: User
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> MemberRole:
        return self.user.role


class ActionRegistry:
    """Resolvable actions for one context snapshot."""

    def __init__(self, actions: List[ActionDefinition], context: SessionContext):
        self.context = context
        self.actions: Dict[str, ActionDefinition] = {}
        for action in actions:
            if action.name in self.actions:
                raise ValueError(f"Action '{action.name}' registered twice")
            # Mark, do not drop: the executor refuses disabled actions at call time
            action.disabled = not allowed(action.permission_key, context.role)
            self.actions[action.name] = action

    def resolve(self, name: str) -> ActionDefinition:
        action = self.actions.get(name)
        if action is None:
            raise ActionNotFound(f"The action '{name}' is not available here")
        return action

    def list_available_actions(self, include_disabled: bool = True) -> Dict[str, Any]:
        """Schemas of registered actions, keyed by name."""
        return {
            name: action.to_schema()
            for name, action in self.actions.items()
            if include_disabled or not action.disabled
        }

    def __contains__(self, name: str) -> bool:
        return name in self.actions

    def __len__(self) -> int:
        return len(self.actions)
