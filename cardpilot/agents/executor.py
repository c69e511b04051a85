"""
Command executor - the single entry point through which the agent runs actions.

Resolves the action in the current registry, re-evaluates its permission gate,
validates arguments and runs the handler. Every failure comes back as a failed
Outcome; nothing raised inside a handler escapes to the conversational layer.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from util.logging import logger

from ..core.errors import CardPilotError, ExecutionFailure, PermissionDenied
from ..core.permissions import allowed
from .registry import ActionRegistry, ExecutionMode, SessionContext


@dataclass
class Outcome:
    """Result of an action, read back to the user by the agent."""
    action: str
    success: bool
    message: str
    error_type: Optional[str] = None
    data: Any = None
    execution_time: float = 0.0
    completed_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "success": self.success,
            "message": self.message,
            "error_type": self.error_type,
            "data": self.data,
            "execution_time": self.execution_time,
            "completed_at": self.completed_at.isoformat(),
        }


def _no_publish(action: str, status: str, view: Dict[str, Any]) -> None:
    pass


class CommandExecutor:
    """Runs one action invocation against the registry current at call time."""

    def __init__(self, registry_provider: Callable[[], ActionRegistry],
                 session_id: Optional[str] = None,
                 publish: Callable[[str, str, Dict[str, Any]], None] = _no_publish):
        self._registry_provider = registry_provider
        self.session_id = session_id
        self._publish = publish

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]],
                      context: SessionContext) -> Outcome:
        """
        Execute an action on behalf of the actor in ``context``.

        Args:
            name: Action name as registered
            arguments: Raw arguments from the agent
            context: Actor and page properties at call time

        Returns:
            Outcome, successful or not
        """
        arguments = arguments or {}
        start_time = time.monotonic()

        try:
            action = self._registry_provider().resolve(name)

            # Gate is evaluated per call, never taken from the registry snapshot
            if not allowed(action.permission_key, context.role):
                logger.log_permission_denied(name, context.role.value, self.session_id)
                raise PermissionDenied(
                    f"You do not have permission to perform {name}. "
                    f"Your role ({context.role.value}) is not allowed to do this."
                )

            params = action.validate_arguments(arguments)

            if action.render:
                self._publish(name, "in_progress", action.render("in_progress", params))

            try:
                result = await action.handler(**params)
            except (CardPilotError, asyncio.CancelledError):
                raise
            except Exception as e:
                raise ExecutionFailure(f"{name} failed: {e}") from e

            if action.render:
                self._publish(name, "complete", action.render("complete", params, result.data))

            outcome = Outcome(
                action=name,
                success=True,
                message=result.message,
                data=result.data,
                execution_time=time.monotonic() - start_time,
            )
            if action.mode == ExecutionMode.SUSPEND_FOR_APPROVAL:
                logger.info(f"Action {name} resumed after human decision: {result.message}")

        except CardPilotError as e:
            outcome = Outcome(
                action=name,
                success=False,
                message=e.message,
                error_type=e.error_type,
                execution_time=time.monotonic() - start_time,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Anything outside the handler (render, validation bugs) still becomes an outcome
            logger.error(f"Unexpected failure while executing {name}: {e}")
            outcome = Outcome(
                action=name,
                success=False,
                message=f"{name} failed: {e}",
                error_type=ExecutionFailure.error_type,
                execution_time=time.monotonic() - start_time,
            )

        logger.log_action_call(
            name,
            self.session_id or "",
            arguments,
            status="success" if outcome.success else "failed",
            duration_ms=outcome.execution_time * 1000,
            error=outcome.error_type,
        )
        return outcome
