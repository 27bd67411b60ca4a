"""Drive browser turns with an ADK runner and translate its events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from google.adk.agents.run_config import RunConfig, StreamingMode
from google.adk.events.event import Event
from google.adk.runners import Runner
from google.genai import types

from ..logging import get_logger
from ..ports import DriverEvent, DriverListener, DriverPort
from .user_content import build_turn_prompt, build_user_content

logger = get_logger(__name__)


class DriverAborted(Exception):
    """The in-flight turn was aborted on request."""


class AdkDriver(DriverPort):
    def __init__(
        self,
        *,
        session_id: str,
        runner: Runner,
        user_id: str,
    ) -> None:
        self.session_id = session_id
        self.runner = runner
        self.user_id = user_id
        self._listeners: list[DriverListener] = []
        self._turn: asyncio.Task[str] | None = None
        self._aborted = False
        self._text_accumulator = ""

    def subscribe(self, listener: DriverListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def run_turn(self, text: str) -> str:
        self._aborted = False
        self._text_accumulator = ""
        await self._ensure_session()
        if self._aborted:
            raise DriverAborted("turn aborted")
        self._turn = asyncio.create_task(self._run(build_turn_prompt(text)))
        try:
            return await self._turn
        except asyncio.CancelledError:
            current = asyncio.current_task()
            outer_cancelled = current is not None and current.cancelling() > 0
            if self._aborted and not outer_cancelled:
                raise DriverAborted("turn aborted") from None
            raise
        finally:
            self._turn = None

    async def abort(self) -> None:
        self._aborted = True
        turn = self._turn
        if turn is not None and not turn.done():
            turn.cancel()

    async def close(self) -> None:
        await self.abort()
        self._listeners.clear()

    async def _ensure_session(self) -> None:
        session = await self.runner.session_service.get_session(
            app_name=self.runner.app_name,
            user_id=self.user_id,
            session_id=self.session_id,
        )
        if session is not None:
            return
        await self.runner.session_service.create_session(
            app_name=self.runner.app_name,
            user_id=self.user_id,
            session_id=self.session_id,
        )

    async def _run(self, prompt: str) -> str:
        final_text = ""
        async for event in self.runner.run_async(
            user_id=self.user_id,
            session_id=self.session_id,
            new_message=build_user_content(prompt),
            run_config=RunConfig(streaming_mode=StreamingMode.SSE),
        ):
            text = self._handle_event(event)
            if text and event.is_final_response() and not event.partial:
                final_text = text
        return final_text

    def _handle_event(self, event: Event) -> str:
        content = event.content
        if not content or not content.parts:
            return ""

        texts: list[str] = []
        for part in content.parts:
            if part.text and not part.thought:
                texts.append(part.text)
                self._emit_text(part.text, partial=bool(event.partial))
            if part.function_call:
                self._handle_function_call(part.function_call)
            if part.function_response:
                self._handle_function_response(part.function_response)
        return "".join(texts)

    def _emit_text(self, text: str, *, partial: bool) -> None:
        if partial:
            self._text_accumulator += text
            self._emit(DriverEvent(kind="delta", text=text))
            return
        # The aggregated event repeats what the partial events streamed.
        delta = text
        if self._text_accumulator and text.startswith(self._text_accumulator):
            delta = text[len(self._text_accumulator) :]
        self._text_accumulator = ""
        if delta:
            self._emit(DriverEvent(kind="delta", text=delta))

    def _handle_function_call(self, function_call: types.FunctionCall) -> None:
        self._emit(
            DriverEvent(
                kind="tool_start",
                tool_name=function_call.name or "",
                tool_call_id=function_call.id or "",
            )
        )

    def _handle_function_response(
        self, function_response: types.FunctionResponse
    ) -> None:
        response: dict[str, Any] = function_response.response or {}
        failed = response.get("ok") is False
        self._emit(
            DriverEvent(
                kind="tool_complete",
                tool_name=function_response.name or "",
                tool_call_id=function_response.id or "",
                success=not failed,
                error=str(response.get("error")) if failed else None,
            )
        )

    def _emit(self, event: DriverEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "driver_listener_failed",
                    session_id=self.session_id,
                    kind=event.kind,
                )
