"""
Per-session handlers for the browser tools the driver may call.

Handlers never raise to the driver: failures come back as
``{"ok": False, "error": <code>, "message": ...}`` so the driver can decide
whether to retry, ask the user or give up.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from ..adapters.wire import append_step
from ..approval import ApprovalGate
from ..broker import ToolCallBroker
from ..domain.errors import CandidateError, ErrorCode, ToolError
from ..domain.models import Candidate, Session, ToolName
from ..logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[
    ["BrowserToolbox", dict[str, Any], str], Awaitable[dict[str, Any]]
]


def _string_arg(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    return value if isinstance(value, str) else ""


def _candidate_from_unknown(value: Any) -> Candidate | None:
    if not isinstance(value, dict):
        return None
    fields = (value.get("id"), value.get("label"), value.get("selector"))
    if not all(isinstance(item, str) for item in fields):
        return None
    return Candidate(id=fields[0], label=fields[1], selector=fields[2])


def parse_find_result(data: Any) -> list[Candidate]:
    """Keep the well-formed candidates of a ``find`` result."""
    if not isinstance(data, dict) or not isinstance(data.get("candidates"), list):
        return []
    parsed = (_candidate_from_unknown(item) for item in data["candidates"])
    return [candidate for candidate in parsed if candidate is not None]


class BrowserToolbox:
    def __init__(
        self, session: Session, broker: ToolCallBroker, gate: ApprovalGate
    ) -> None:
        self.session = session
        self.broker = broker
        self.gate = gate

    async def invoke(
        self,
        tool: ToolName,
        args: dict[str, Any],
        *,
        action_id: str | None = None,
    ) -> dict[str, Any]:
        action_id = action_id or f"tool_{uuid.uuid4().hex}"
        if not self.session.run_live:
            return ToolError(ErrorCode.CANCELLED).to_outcome()
        handler = TOOL_HANDLERS[tool]
        try:
            return await handler(self, args, action_id)
        except ToolError as exc:
            logger.info(
                "tool_failed",
                session_id=self.session.session_id,
                action_id=action_id,
                tool=tool.value,
                error=exc.code.value,
            )
            return exc.to_outcome()

    def require_single_candidate(self) -> Candidate:
        candidates = self.session.candidates
        if not candidates:
            raise CandidateError(
                "Call find first and identify a candidate before taking actions."
            )
        if len(candidates) > 1:
            raise CandidateError(
                "Multiple candidates are still unresolved. Call select_candidate "
                "with a candidate id, or ask the user to pick one, before acting."
            )
        return candidates[0]

    async def navigate(self, args: dict[str, Any], action_id: str) -> dict[str, Any]:
        url = _string_arg(args, "url").strip()
        if not url:
            raise ToolError(ErrorCode.NOT_FOUND, "navigate needs a url")

        await append_step(self.session, f"Navigating to {url}")
        data = await self.broker.issue(
            self.session,
            ToolName.NAVIGATE,
            {"url": url},
            f"navigating to {url}",
            action_id=action_id,
        )
        # Selectors from the previous document are meaningless now.
        self.session.candidates = []
        if isinstance(data, dict):
            return data
        return {"ok": True, "url": url}

    async def find(self, args: dict[str, Any], action_id: str) -> dict[str, Any]:
        query = _string_arg(args, "query").strip()
        if not query:
            return {"candidates": []}

        await append_step(self.session, f'Finding elements for "{query}"')
        data = await self.broker.issue(
            self.session,
            ToolName.FIND,
            {"query": query},
            f"finding {query}",
            action_id=action_id,
        )
        candidates = parse_find_result(data)
        self.session.candidates = candidates
        await append_step(self.session, f"Found {len(candidates)} candidate(s)")
        return {"candidates": [candidate.to_dict() for candidate in candidates]}

    async def select_candidate(
        self, args: dict[str, Any], action_id: str
    ) -> dict[str, Any]:
        candidate_id = _string_arg(args, "id").strip()
        for candidate in self.session.candidates:
            if candidate.id == candidate_id:
                break
        else:
            raise ToolError(
                ErrorCode.NOT_FOUND,
                f"No candidate {candidate_id!r} in the last find results.",
            )
        self.session.candidates = [candidate]
        await append_step(
            self.session, f"Selected candidate {candidate.id}: {candidate.label}"
        )
        return {"selected": candidate.to_dict()}

    async def highlight(self, args: dict[str, Any], action_id: str) -> dict[str, Any]:
        candidate = self.require_single_candidate()
        selector = _string_arg(args, "selector").strip()
        label = _string_arg(args, "label").strip()
        if not selector:
            raise ToolError(ErrorCode.NOT_FOUND, "highlight needs a selector")

        await append_step(self.session, f"Highlighting {selector}")
        await self.broker.issue(
            self.session,
            ToolName.HIGHLIGHT,
            {"selector": selector, "label": label},
            f"highlighting {label or candidate.label or selector}",
            action_id=action_id,
        )
        return {"ok": True}

    async def click(self, args: dict[str, Any], action_id: str) -> dict[str, Any]:
        candidate = self.require_single_candidate()
        selector = _string_arg(args, "selector").strip()
        if not selector:
            raise ToolError(ErrorCode.NOT_FOUND, "click needs a selector")

        await self._gated_dispatch(
            ToolName.CLICK,
            {"selector": selector},
            f"clicking {candidate.label}",
            action_id,
            step=f"Clicking {selector}",
        )
        return {"ok": True}

    async def type(self, args: dict[str, Any], action_id: str) -> dict[str, Any]:
        candidate = self.require_single_candidate()
        selector = _string_arg(args, "selector").strip()
        text = _string_arg(args, "text")
        if not selector:
            raise ToolError(ErrorCode.NOT_FOUND, "type needs a selector")

        await self._gated_dispatch(
            ToolName.TYPE,
            {"selector": selector, "text": text},
            f"typing into {candidate.label}",
            action_id,
            step=f"Typing into {selector}",
        )
        return {"ok": True}

    async def _gated_dispatch(
        self,
        tool: ToolName,
        params: dict[str, Any],
        label: str,
        action_id: str,
        *,
        step: str,
    ) -> Any:
        target = f"{label} {params.get('selector', '')}"
        if self.gate.needs_approval(self.session, tool, target):
            await append_step(self.session, f"Waiting for approval: {label}")
            await self.gate.request(self.session, action_id, tool, label)
            if not self.session.run_live:
                raise ToolError(ErrorCode.CANCELLED)

        await append_step(self.session, step)
        return await self.broker.issue(
            self.session, tool, params, label, action_id=action_id
        )


TOOL_HANDLERS: dict[ToolName, ToolHandler] = {
    ToolName.NAVIGATE: BrowserToolbox.navigate,
    ToolName.FIND: BrowserToolbox.find,
    ToolName.SELECT_CANDIDATE: BrowserToolbox.select_candidate,
    ToolName.HIGHLIGHT: BrowserToolbox.highlight,
    ToolName.CLICK: BrowserToolbox.click,
    ToolName.TYPE: BrowserToolbox.type,
}

_missing = set(ToolName) - set(TOOL_HANDLERS)
if _missing:
    raise RuntimeError(f"browser tools without a handler: {sorted(_missing)}")
