"""Shared fakes: a recording channel, a scripted driver and wired components."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from tabpilot.approval import ApprovalGate
from tabpilot.broker import ToolCallBroker
from tabpilot.domain.models import RunState, Session
from tabpilot.ports import DriverEvent, DriverListener
from tabpilot.settings import Settings

TOKEN = "pairing-secret"


class FakeChannel:
    """Records every frame sent to the actuator side."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self.close_code: int | None = None
        self.listeners: list[Callable[[dict[str, Any]], None]] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)
        for listener in list(self.listeners):
            listener(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.open = False
        self.close_code = code

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["type"] == kind]

    def steps(self) -> list[str]:
        return [frame["step"] for frame in self.of_type("step_event")]


TurnScript = Callable[["FakeDriver", str], Awaitable[str]]


class FakeDriver:
    """Driver whose turns run ``script`` in an abortable inner task."""

    def __init__(self, script: TurnScript | None = None) -> None:
        self.script = script
        self.listeners: list[DriverListener] = []
        self.turns: list[str] = []
        self.aborted = False
        self.closed = False
        self._task: asyncio.Task[str] | None = None

    def subscribe(self, listener: DriverListener) -> Callable[[], None]:
        self.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    def emit(self, event: DriverEvent) -> None:
        for listener in list(self.listeners):
            listener(event)

    async def run_turn(self, text: str) -> str:
        self.turns.append(text)
        if self.script is None:
            return f"echo: {text}"
        self._task = asyncio.create_task(self.script(self, text))
        try:
            return await self._task
        except asyncio.CancelledError:
            if self.aborted:
                raise RuntimeError("aborted") from None
            raise

    async def abort(self) -> None:
        self.aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def close(self) -> None:
        self.closed = True
        await self.abort()


async def wait_for_frame(
    channel: FakeChannel, kind: str, count: int = 1, timeout: float = 1.0
) -> dict[str, Any]:
    """Wait until ``count`` frames of ``kind`` were sent; return the last one."""

    async def _poll() -> dict[str, Any]:
        while len(channel.of_type(kind)) < count:
            await asyncio.sleep(0.001)
        return channel.of_type(kind)[count - 1]

    return await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        pairing_token=TOKEN,
        tool_timeout_s=0.2,
        navigate_timeout_s=0.3,
        action_timeout_s=0.3,
        turn_timeout_s=1.0,
        keepalive_interval_s=30.0,
    )


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def session(channel: FakeChannel) -> Session:
    return Session(session_id="session-1", token=TOKEN, channel=channel)


@pytest.fixture
def live_session(session: Session) -> Session:
    session.run = RunState()
    return session


@pytest.fixture
def broker(settings: Settings) -> ToolCallBroker:
    return ToolCallBroker(settings)


@pytest.fixture
def gate(settings: Settings) -> ApprovalGate:
    return ApprovalGate(settings)
