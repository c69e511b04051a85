"""
Error taxonomy for action dispatch.

Every error carries an ``error_type`` tag and a message that is safe to read
back to the end user, because the agent relays outcomes verbatim.
"""


class CardPilotError(Exception):
    """Base class for failures surfaced to the agent as an outcome."""

    error_type = "ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDenied(CardPilotError):
    """The permission gate evaluated false for the actor's role."""

    error_type = "PERMISSION_DENIED"


class ActionNotFound(PermissionDenied):
    """No action with that name is resolvable in the current context."""

    error_type = "NOT_FOUND"


class ValidationFailure(CardPilotError):
    """A required argument is missing or a lookup found nothing."""

    error_type = "VALIDATION_FAILURE"


class InvalidStatusTransition(ValidationFailure):
    """A transaction status change that would leave the pending state twice."""

    error_type = "INVALID_STATUS_TRANSITION"


class NoPendingItem(CardPilotError):
    """An approval action was invoked with nothing to present."""

    error_type = "NO_PENDING_ITEM"


class ExecutionFailure(CardPilotError):
    """The underlying store call raised."""

    error_type = "EXECUTION_FAILURE"


class ApprovalCancelled(CardPilotError):
    """The hosting session ended before a human decided."""

    error_type = "APPROVAL_CANCELLED"
