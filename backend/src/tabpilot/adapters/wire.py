"""
Wire envelope models for the session channel and outbound send helpers.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..domain.errors import ProtocolError
from ..domain.models import Session, ToolName


class Envelope(BaseModel):
    type: str
    sessionId: str
    token: str


class UserMessage(Envelope):
    type: Literal["user_message"] = "user_message"
    text: str
    autoRun: bool | None = None


class UserApproval(Envelope):
    type: Literal["user_approval"] = "user_approval"
    actionId: str
    approved: bool


class Cancel(Envelope):
    type: Literal["cancel"] = "cancel"


class ToolResult(Envelope):
    type: Literal["tool_result"] = "tool_result"
    # Only the envelope keys are strict; a bad body settles as a failure.
    actionId: Any = None
    ok: Any = False
    data: Any = None
    error: Any = None


InboundMessage = Annotated[
    UserMessage | UserApproval | Cancel | ToolResult,
    Field(discriminator="type"),
]
_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


class AssistantDelta(Envelope):
    type: Literal["assistant_delta"] = "assistant_delta"
    textDelta: str


class AssistantFinal(Envelope):
    type: Literal["assistant_final"] = "assistant_final"
    text: str


class StepEvent(Envelope):
    type: Literal["step_event"] = "step_event"
    step: str


class UiHint(BaseModel):
    label: str


class ToolRequest(Envelope):
    type: Literal["tool_request"] = "tool_request"
    actionId: str
    tool: ToolName
    params: dict[str, Any]
    ui: UiHint
    timeoutMs: int


class ApprovalRequest(Envelope):
    type: Literal["approval_request"] = "approval_request"
    actionId: str
    tool: ToolName
    label: str


OutboundMessage = (
    AssistantDelta | AssistantFinal | StepEvent | ToolRequest | ApprovalRequest
)


def read_envelope(raw: str | bytes) -> dict[str, Any]:
    """Decode a raw frame and check the fields every envelope carries."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("envelope is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("envelope is not a JSON object")
    for key in ("type", "sessionId", "token"):
        if not isinstance(payload.get(key), str):
            raise ProtocolError(f"envelope field {key!r} missing or not a string")
    return payload


def parse_inbound(payload: dict[str, Any]) -> InboundMessage:
    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(f"invalid {payload.get('type')!r} envelope") from exc


def encode(message: OutboundMessage) -> dict[str, Any]:
    return message.model_dump(mode="json")


async def send(session: Session, message: OutboundMessage) -> bool:
    """Send to the session channel; frames for a closed channel are dropped."""
    if not session.channel.is_open:
        return False
    await session.channel.send_json(encode(message))
    return True


async def send_delta(session: Session, text_delta: str) -> bool:
    return await send(
        session,
        AssistantDelta(
            sessionId=session.session_id, token=session.token, textDelta=text_delta
        ),
    )


async def send_final(session: Session, text: str) -> bool:
    return await send(
        session,
        AssistantFinal(sessionId=session.session_id, token=session.token, text=text),
    )


async def send_step(session: Session, step: str) -> bool:
    return await send(
        session,
        StepEvent(sessionId=session.session_id, token=session.token, step=step),
    )


async def append_step(session: Session, text: str) -> None:
    """Record a progress line on the live run and mirror it to the channel."""
    run = session.run
    if run is None or run.cancelled:
        return
    run.steps.append(text)
    await send_step(session, text)
