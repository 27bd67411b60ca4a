"""Domain models for sessions, runs, pending tool calls and approvals."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from ..ports import ChannelPort, DriverPort


class ToolName(str, Enum):
    NAVIGATE = "navigate"
    FIND = "find"
    SELECT_CANDIDATE = "select_candidate"
    HIGHLIGHT = "highlight"
    CLICK = "click"
    TYPE = "type"


# Tools the approval gate may hold for a human decision.
GATED_TOOLS = frozenset({ToolName.CLICK, ToolName.TYPE})


@dataclass(frozen=True)
class Candidate:
    id: str
    label: str
    selector: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "selector": self.selector}


@dataclass
class PendingToolCall:
    action_id: str
    tool: ToolName
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class PendingAction:
    action_id: str
    tool: ToolName
    label: str
    decision: asyncio.Future[bool]
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, str]:
        return {"actionId": self.action_id, "tool": self.tool.value, "label": self.label}


@dataclass
class RunState:
    cancelled: bool = False
    final_sent: bool = False
    steps: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)


@dataclass
class Session:
    session_id: str
    token: str
    channel: ChannelPort
    auto_run: bool = False
    run: RunState | None = None
    pending_tools: dict[str, PendingToolCall] = field(default_factory=dict)
    candidates: list[Candidate] = field(default_factory=list)
    pending_action: PendingAction | None = None
    approval_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    turns: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    worker: asyncio.Task[None] | None = None
    driver: DriverPort | None = None
    unsubscribers: list[Callable[[], None]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def run_live(self) -> bool:
        return self.run is not None and not self.run.cancelled
