"""
Actuator side of the session channel.

Sends the user's messages, relays answer text and progress to a callback,
asks a human about ``approval_request`` frames and executes ``tool_request``
frames against an ``HtmlPage``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

from websockets.asyncio.client import ClientConnection, connect

from ..domain.errors import ErrorCode, ToolError, normalize_error_code
from ..logging import get_logger
from .executor import execute
from .page import HtmlPage

logger = get_logger(__name__)

ApprovalCallback = Callable[[dict[str, Any]], Awaitable[bool]]
EventCallback = Callable[[dict[str, Any]], None]

MAX_TOOL_TIMEOUT_S = 120.0
DEFAULT_TOOL_TIMEOUT_S = 5.0


class ActuatorClient:
    def __init__(
        self,
        *,
        url: str,
        session_id: str,
        token: str,
        page: HtmlPage,
        approve: ApprovalCallback,
        on_event: EventCallback | None = None,
        auto_run: bool = False,
    ) -> None:
        self.url = url
        self.session_id = session_id
        self.token = token
        self.page = page
        self.approve = approve
        self.on_event = on_event
        self.auto_run = auto_run
        self.turn_done = asyncio.Event()
        self._ws: ClientConnection | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    async def connect(self) -> None:
        self._ws = await connect(self.url)
        logger.info("actuator_connected", url=self.url, session_id=self.session_id)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def send(self, payload: dict[str, Any]) -> None:
        if self._ws is None:
            raise ToolError(ErrorCode.EXTENSION_NOT_READY, "not connected")
        envelope = {"sessionId": self.session_id, "token": self.token, **payload}
        await self._ws.send(json.dumps(envelope))

    async def send_user_message(self, text: str) -> None:
        self.turn_done.clear()
        await self.send({"type": "user_message", "text": text, "autoRun": self.auto_run})

    async def stop(self) -> None:
        await self.send({"type": "cancel"})

    async def serve(self) -> None:
        """Handle frames until the backend closes the channel."""
        if self._ws is None:
            raise ToolError(ErrorCode.EXTENSION_NOT_READY, "not connected")
        async for raw in self._ws:
            await self.handle_frame(raw)

    async def handle_frame(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            return
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            return
        if message.get("sessionId") != self.session_id or message.get("token") != self.token:
            return

        kind = message["type"]
        if kind in ("assistant_delta", "assistant_final", "step_event"):
            if self.on_event is not None:
                self.on_event(message)
            if kind == "assistant_final":
                self.turn_done.set()
        elif kind == "approval_request":
            self._spawn(self._answer_approval(message))
        elif kind == "tool_request":
            self._spawn(self.execute_tool_request(message))

    async def _answer_approval(self, request: dict[str, Any]) -> None:
        approved = await self.approve(request)
        await self.send(
            {
                "type": "user_approval",
                "actionId": request.get("actionId", ""),
                "approved": approved,
            }
        )

    async def execute_tool_request(self, request: dict[str, Any]) -> None:
        action_id = str(request.get("actionId", ""))
        label = str((request.get("ui") or {}).get("label", ""))
        timeout_ms = request.get("timeoutMs")
        timeout = DEFAULT_TOOL_TIMEOUT_S
        if isinstance(timeout_ms, (int, float)) and timeout_ms > 0:
            timeout = min(timeout_ms / 1000, MAX_TOOL_TIMEOUT_S)

        self.page.set_hud(f"tabpilot: {label}...")
        result: dict[str, Any]
        try:
            data = await asyncio.wait_for(self._run_tool(request, timeout), timeout)
            result = {"ok": True, "data": data}
            self.page.set_hud("Done")
        except TimeoutError:
            result = {"ok": False, "error": ErrorCode.TIMEOUT.value}
        except ToolError as exc:
            result = {"ok": False, "error": exc.code.value}
        except Exception:
            logger.exception("tool_request_failed", action_id=action_id)
            result = {"ok": False, "error": ErrorCode.EXTENSION_NOT_READY.value}
        if not result["ok"]:
            self.page.set_hud(f"Failed: {result['error']}")

        await self.send({"type": "tool_result", "actionId": action_id, **result})

    async def _run_tool(self, request: dict[str, Any], timeout: float) -> Any:
        tool = request.get("tool")
        params = request.get("params") or {}
        if tool == "navigate":
            return await self.page.navigate(str(params.get("url", "")), timeout)

        response = execute(self.page, {**params, "action": tool})
        if not response.get("ok"):
            raise ToolError(normalize_error_code(response.get("error")))
        return response.get("data")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
