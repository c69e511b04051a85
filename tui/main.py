"""
Approval console - terminal UI where an admin approves or denies the
transactions an agent is waiting on.
"""

import asyncio
import sys

import requests
from textual.app import App, ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Button, Footer, Header, Static

from cardpilot.core.config import APPROVAL_API_URL, APPROVAL_CONSOLE_REFRESH_SEC
from util.logging import logger
from .approvals import ApprovalApiClient, pending_decisions


class ApprovalConsoleApp(App):
    """Lists presented approvals; each row carries its own Approve and Deny buttons."""

    CSS = """
    .title {
        text-align: center;
        text-style: bold;
        margin-bottom: 1;
        color: cyan;
    }

    .row {
        height: 3;
        margin-bottom: 1;
    }

    .row-label {
        width: 1fr;
        padding: 1;
    }

    .empty {
        text-align: center;
        color: gray;
    }
    """

    TITLE = "CardPilot Approval Console"
    BINDINGS = [("q", "quit", "Quit"), ("r", "refresh", "Refresh")]

    def __init__(self, client: ApprovalApiClient = None, refresh_sec: float = None):
        super().__init__()
        self.client = client or ApprovalApiClient()
        self.refresh_sec = refresh_sec or APPROVAL_CONSOLE_REFRESH_SEC
        self.rows = []
        self._row_keys = None
        self._refreshing = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(f"Pending approvals at {self.client.base_url}", classes="title")
        yield VerticalScroll(id="approvals")
        yield Footer()

    async def on_mount(self) -> None:
        logger.info("Approval console started")
        await self.refresh_approvals()
        self.set_interval(self.refresh_sec, self.refresh_approvals)

    async def action_refresh(self) -> None:
        await self.refresh_approvals()

    async def refresh_approvals(self) -> None:
        # Interval ticks that land while a slow request is in flight are skipped
        if self._refreshing:
            return
        self._refreshing = True
        try:
            approvals = await asyncio.to_thread(self.client.list_pending)
        except requests.RequestException as e:
            self.notify(f"Could not load approvals: {e}", title="Connection", severity="error")
            return
        finally:
            self._refreshing = False

        rows = pending_decisions(approvals)

        keys = [(r["request_id"], r["transaction_id"]) for r in rows]
        if keys == self._row_keys:
            return
        self._row_keys = keys
        self.rows = rows

        container = self.query_one("#approvals", VerticalScroll)
        await container.remove_children()
        if not rows:
            await container.mount(Static("No pending transactions", classes="empty"))
            return

        for index, row in enumerate(rows):
            await container.mount(Horizontal(
                Static(row["label"], classes="row-label"),
                Button("Approve", id=f"approve-{index}", variant="success"),
                Button("Deny", id=f"deny-{index}", variant="error"),
                classes="row",
            ))

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        decision, _, index = (event.button.id or "").partition("-")
        if decision not in ("approve", "deny") or not index.isdigit():
            return

        row = self.rows[int(index)]
        decide = self.client.approve if decision == "approve" else self.client.deny
        try:
            result = await asyncio.to_thread(decide, row["request_id"], row["transaction_id"])
        except requests.RequestException as e:
            self.notify(f"Decision failed: {e}", title="Approval", severity="error")
            logger.error(f"Approval console decision failed: {e}")
        else:
            self.notify(result.get("outcome") or "Decision recorded", title="Approval",
                        severity="information")

        self._row_keys = None
        await self.refresh_approvals()


def main():
    """Approval console entry point."""
    try:
        print(f"Starting approval console against {APPROVAL_API_URL}...")
        ApprovalConsoleApp().run()
    except KeyboardInterrupt:
        logger.info("Approval console exited via keyboard interrupt")
    except Exception as e:
        error_msg = f"Approval console startup failed: {e}"
        print(error_msg)
        logger.error(error_msg)
        sys.exit(1)


if __name__ == "__main__":
    main()
