"""
Approval console - HTTP client for presented approvals and the decisions on them.
"""

from typing import Any, Dict, List, Optional

import requests

from cardpilot.core.config import APPROVAL_API_TIMEOUT_SEC, APPROVAL_API_URL
from util.logging import logger


class ApprovalApiClient:
    """Talks to the approval endpoints of a running API process."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or APPROVAL_API_URL).rstrip("/")
        self.timeout = timeout or APPROVAL_API_TIMEOUT_SEC
        self.http = session or requests.Session()

    def list_pending(self) -> List[Dict[str, Any]]:
        """Approvals currently waiting for a human."""
        response = self.http.get(f"{self.base_url}/approvals", timeout=self.timeout)
        response.raise_for_status()
        return response.json().get("approvals", [])

    def approve(self, request_id: str, transaction_id: str) -> Dict[str, Any]:
        return self._decide(request_id, transaction_id, "approve")

    def deny(self, request_id: str, transaction_id: str) -> Dict[str, Any]:
        return self._decide(request_id, transaction_id, "deny")

    def _decide(self, request_id: str, transaction_id: str, decision: str) -> Dict[str, Any]:
        response = self.http.post(
            f"{self.base_url}/approvals/{request_id}/{decision}",
            json={"transaction_id": transaction_id},
            timeout=self.timeout,
        )
        if response.status_code == 409:
            logger.warning(f"Approval {request_id} was already decided elsewhere")
        response.raise_for_status()
        return response.json()


def format_transaction_line(transaction: Dict[str, Any]) -> str:
    """One line per transaction: id, title, amount and current status."""
    amount = float(transaction.get("amount", 0))
    return (
        f"{transaction.get('id')}  {transaction.get('title', '')[:40]:<40}  "
        f"${amount:>10,.2f}  [{transaction.get('status', 'unknown')}]"
    )


def pending_decisions(approvals: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten approvals into (request, transaction) pairs, one per Approve/Deny row."""
    rows = []
    for approval in approvals:
        for transaction in approval.get("transactions", []):
            rows.append({
                "request_id": approval["id"],
                "transaction_id": transaction["id"],
                "label": format_transaction_line(transaction),
            })
    return rows
