"""
Structured logging for the command-dispatch core.
Action calls, permission refusals, approval lifecycle and store mutations.
"""

import logging
from typing import Any, Dict, List

# Fields whose values never reach the log stream
SENSITIVE_FIELDS = ['pin', 'newPin', 'secret', 'password', 'token']


class StructuredLogger:
    """Structured logger for action dispatch, approvals and store writes."""

    def __init__(self, name: str = "cardpilot"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_action_call(self, action: str, session_id: str, arguments: Dict[str, Any],
                        status: str = "success", duration_ms: float = None, error: str = None):
        """Log a single action invocation and its result."""
        details = {
            "action": action,
            "session_id": session_id,
            "arguments": sanitize_payload(arguments),
        }
        if duration_ms is not None:
            details["duration_ms"] = round(duration_ms, 2)
        if error:
            details["error"] = error[:100]

        self.log_operation(f"action.{action}", status, details)

    def log_permission_denied(self, action: str, role: str, session_id: str = None):
        """Log an action refused by the permission gate."""
        details = {"action": action, "role": role}
        if session_id:
            details["session_id"] = session_id

        self.log_operation("permission.denied", "rejected", details)

    def log_approval_presented(self, request_id: str, transaction_ids: List[str], approver: str):
        """Log an approval request put in front of a human."""
        log_details = {
            "request_id": request_id,
            "transaction_ids": transaction_ids,
            "approver": approver
        }
        self.log_operation("approval.presented", "waiting", log_details)

    def log_approval_decision(self, request_id: str, transaction_id: str, decision: str, approver: str):
        """Log approval decision."""
        log_details = {
            "request_id": request_id,
            "transaction_id": transaction_id,
            "decision": decision,
            "approver": approver
        }
        self.log_operation("approval.decision", decision, log_details)

    def log_approval_cancelled(self, request_id: str, reason: str = "session_closed"):
        """Log an approval discarded before any decision."""
        self.log_operation("approval.cancelled", "discarded", {
            "request_id": request_id,
            "reason": reason
        })

    def log_store_mutation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                           status: str = "success"):
        """Log a write against the card store."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"store.{operation}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads before they are logged."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
