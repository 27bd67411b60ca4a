"""
Port definition for the natural-language driver runtime.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, Protocol

DriverEventKind = Literal["delta", "tool_start", "tool_complete"]


@dataclass(frozen=True)
class DriverEvent:
    kind: DriverEventKind
    text: str = ""
    tool_name: str = ""
    tool_call_id: str = ""
    success: bool = True
    error: str | None = None


DriverListener = Callable[[DriverEvent], None]


class DriverPort(Protocol):
    async def run_turn(self, text: str) -> str:
        """Run one user turn to completion and return the final answer text."""
        ...

    async def abort(self) -> None: ...

    def subscribe(self, listener: DriverListener) -> Callable[[], None]: ...

    async def close(self) -> None: ...
