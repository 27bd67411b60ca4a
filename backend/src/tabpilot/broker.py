"""
Correlated, deadline-bound tool requests to the actuator side of a session.

Every request is keyed by its action id in ``Session.pending_tools``. Whoever
pops the entry first (result, deadline, cancellation) settles the future;
every later event for the same id finds nothing and is ignored.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from .adapters.wire import ToolRequest, UiHint, send
from .domain.errors import ErrorCode, ToolError, normalize_error_code
from .domain.models import PendingToolCall, Session, ToolName
from .logging import get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


class ToolCallBroker:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def timeout_for(self, tool: ToolName) -> float:
        if tool is ToolName.NAVIGATE:
            return self.settings.navigate_timeout_s
        if tool in (ToolName.CLICK, ToolName.TYPE):
            return self.settings.action_timeout_s
        return self.settings.tool_timeout_s

    async def issue(
        self,
        session: Session,
        tool: ToolName,
        params: dict[str, Any],
        ui_label: str,
        *,
        action_id: str | None = None,
    ) -> Any:
        """Send a ``tool_request`` and wait for its settlement.

        Returns the result data on success and raises ``ToolError`` with the
        settled code otherwise.
        """
        if not session.channel.is_open:
            raise ToolError(
                ErrorCode.EXTENSION_NOT_READY, "actuator channel is not connected"
            )

        action_id = action_id or self._generate_action_id(tool)
        if action_id in session.pending_tools:
            raise ToolError(
                ErrorCode.EXTENSION_NOT_READY,
                f"action id {action_id} is already pending",
            )

        loop = asyncio.get_running_loop()
        timeout = self.timeout_for(tool)
        pending = PendingToolCall(
            action_id=action_id, tool=tool, future=loop.create_future()
        )
        pending.timer = loop.call_later(timeout, self._expire, session, action_id)
        session.pending_tools[action_id] = pending

        request = ToolRequest(
            sessionId=session.session_id,
            token=session.token,
            actionId=action_id,
            tool=tool,
            params=params,
            ui=UiHint(label=ui_label),
            timeoutMs=int(timeout * 1000),
        )
        logger.info(
            "tool_request_issued",
            session_id=session.session_id,
            action_id=action_id,
            tool=tool.value,
            timeout_s=timeout,
        )
        if not await send(session, request):
            self._discard(session, action_id)
            raise ToolError(
                ErrorCode.EXTENSION_NOT_READY, "actuator channel is not connected"
            )

        try:
            return await pending.future
        except asyncio.CancelledError:
            self._discard(session, action_id)
            raise

    def settle(
        self,
        session: Session,
        action_id: str,
        ok: bool,
        data: Any = None,
        error: Any = None,
    ) -> bool:
        pending = session.pending_tools.pop(action_id, None)
        if pending is None:
            logger.debug(
                "tool_result_ignored",
                session_id=session.session_id,
                action_id=action_id,
            )
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return False

        if ok:
            pending.future.set_result(data)
        else:
            code = normalize_error_code(error)
            pending.future.set_exception(ToolError(code))
        logger.info(
            "tool_result_settled",
            session_id=session.session_id,
            action_id=action_id,
            tool=pending.tool.value,
            ok=ok,
        )
        return True

    def cancel_all(
        self, session: Session, code: ErrorCode = ErrorCode.CANCELLED
    ) -> int:
        """Reject every pending call of the session with ``code``."""
        count = 0
        for action_id in list(session.pending_tools):
            pending = session.pending_tools.pop(action_id)
            if pending.timer is not None:
                pending.timer.cancel()
            if not pending.future.done():
                pending.future.set_exception(ToolError(code))
                count += 1
        if count:
            logger.info(
                "tool_requests_rejected",
                session_id=session.session_id,
                count=count,
                code=code.value,
            )
        return count

    def _expire(self, session: Session, action_id: str) -> None:
        pending = session.pending_tools.pop(action_id, None)
        if pending is None or pending.future.done():
            return
        logger.warning(
            "tool_request_timed_out",
            session_id=session.session_id,
            action_id=action_id,
            tool=pending.tool.value,
        )
        pending.future.set_exception(
            ToolError(
                ErrorCode.TIMEOUT,
                f"{pending.tool.value} got no result within "
                f"{self.timeout_for(pending.tool):g}s",
            )
        )

    def _discard(self, session: Session, action_id: str) -> None:
        pending = session.pending_tools.pop(action_id, None)
        if pending is None:
            return
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.future.done():
            pending.future.cancel()

    def _generate_action_id(self, tool: ToolName) -> str:
        return f"{tool.value}_{uuid.uuid4().hex}"
