"""
Human-in-the-loop approval for click/type tool invocations.

A gated invocation moves Requested -> PendingApproval and then either
Approved (the caller goes on to the broker) or Rejected (the caller gets
PERMISSION_DENIED and the actuator never sees the request).
"""

from __future__ import annotations

import asyncio
import re
from functools import lru_cache

from .adapters.wire import ApprovalRequest, append_step, send
from .domain.errors import ErrorCode, ToolError
from .domain.models import GATED_TOOLS, PendingAction, Session, ToolName
from .logging import get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


@lru_cache(maxsize=8)
def _dangerous_action_re(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def needs_approval(
    tool: ToolName,
    auto_run: bool,
    target: str,
    pattern: str | None = None,
) -> bool:
    """Decide whether ``tool`` must wait for a human decision.

    ``target`` is the visible label and locator of the element the tool acts
    on. Dangerous-looking clicks are held even when auto-run is on.
    """
    if tool not in GATED_TOOLS:
        return False
    if not auto_run:
        return True
    if tool is not ToolName.CLICK:
        return False
    if pattern is None:
        pattern = get_settings().dangerous_action_pattern
    return _dangerous_action_re(pattern).search(target) is not None


class ApprovalGate:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def needs_approval(self, session: Session, tool: ToolName, target: str) -> bool:
        return needs_approval(
            tool, session.auto_run, target, self.settings.dangerous_action_pattern
        )

    async def request(
        self, session: Session, action_id: str, tool: ToolName, label: str
    ) -> None:
        """Suspend until the user decides; raise ``ToolError`` unless approved."""
        # A second gated call waits here until the current decision is in.
        async with session.approval_lock:
            if not session.run_live:
                raise ToolError(ErrorCode.CANCELLED)

            decision: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
            action = PendingAction(
                action_id=action_id, tool=tool, label=label, decision=decision
            )
            session.pending_action = action
            try:
                sent = await send(
                    session,
                    ApprovalRequest(
                        sessionId=session.session_id,
                        token=session.token,
                        actionId=action_id,
                        tool=tool,
                        label=label,
                    ),
                )
                if not sent:
                    raise ToolError(
                        ErrorCode.EXTENSION_NOT_READY,
                        "approval channel is not connected",
                    )
                logger.info(
                    "approval_requested",
                    session_id=session.session_id,
                    action_id=action_id,
                    tool=tool.value,
                    label=label,
                )
                approved = await decision
            finally:
                if session.pending_action is action:
                    session.pending_action = None

        if not approved:
            raise ToolError(
                ErrorCode.PERMISSION_DENIED, f"User rejected {tool.value}: {label}"
            )

    async def decide(self, session: Session, action_id: str, approved: bool) -> bool:
        """Resolve the pending action; stale or repeated decisions are ignored."""
        action = session.pending_action
        if action is None or action.action_id != action_id or action.decision.done():
            return False
        session.pending_action = None
        action.decision.set_result(bool(approved))
        decision = "approved" if approved else "rejected"
        logger.info(
            "approval_decided",
            session_id=session.session_id,
            action_id=action_id,
            decision=decision,
        )
        await append_step(session, f"User {decision} action {action_id}")
        return True

    def cancel(self, session: Session) -> bool:
        action = session.pending_action
        if action is None:
            return False
        session.pending_action = None
        if action.decision.done():
            return False
        action.decision.set_exception(ToolError(ErrorCode.CANCELLED))
        return True
