"""
Validation and dispatch of inbound envelopes.

This is the trust boundary: an envelope whose token does not match the
pairing token closes the channel and goes no further.
"""

from __future__ import annotations

import hmac

from structlog.contextvars import bound_contextvars

from .adapters.wire import (
    Cancel,
    ToolResult,
    UserApproval,
    UserMessage,
    parse_inbound,
    read_envelope,
)
from .approval import ApprovalGate
from .broker import ToolCallBroker
from .domain.errors import ProtocolError
from .domain.models import Session
from .logging import get_logger
from .ports import ChannelPort, SessionRegistryPort
from .run_controller import RunController
from .settings import Settings, get_settings

logger = get_logger(__name__)

INVALID_TOKEN_CLOSE_CODE = 4001


class ProtocolRouter:
    def __init__(
        self,
        *,
        registry: SessionRegistryPort,
        broker: ToolCallBroker,
        gate: ApprovalGate,
        controller: RunController,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.gate = gate
        self.controller = controller
        self.settings = settings or get_settings()

    def token_matches(self, token: str) -> bool:
        return hmac.compare_digest(
            token.encode("utf-8"), self.settings.pairing_token.encode("utf-8")
        )

    async def route(self, channel: ChannelPort, raw: str | bytes) -> None:
        try:
            payload = read_envelope(raw)
            if not self.token_matches(payload["token"]):
                raise ProtocolError(
                    "invalid token", close_code=INVALID_TOKEN_CLOSE_CODE
                )
            message = parse_inbound(payload)
        except ProtocolError as exc:
            logger.warning("envelope_rejected", reason=exc.reason)
            await channel.close(exc.close_code, exc.reason)
            return

        with bound_contextvars(session_id=message.sessionId):
            session = self._session_for(channel, message.sessionId, message.token)
            if isinstance(message, UserMessage):
                await self._on_user_message(session, message)
            elif isinstance(message, UserApproval):
                await self._on_user_approval(session, message)
            elif isinstance(message, Cancel):
                await self.controller.cancel(session)
            elif isinstance(message, ToolResult):
                self._on_tool_result(session, message)

    async def disconnect(self, channel: ChannelPort) -> None:
        for session in self.registry.sessions_for(channel):
            await self.controller.teardown(session, "channel closed")

    async def shutdown(self) -> None:
        for session in self.registry.all():
            await self.controller.teardown(session, "shutdown")

    def _session_for(
        self, channel: ChannelPort, session_id: str, token: str
    ) -> Session:
        session, created = self.registry.get_or_create(session_id, token, channel)
        if created:
            self.controller.attach(session)
        return session

    async def _on_user_message(self, session: Session, message: UserMessage) -> None:
        logger.info("user_message", text=message.text)
        if message.autoRun is not None:
            session.auto_run = message.autoRun
        self.controller.enqueue(session, message.text)

    async def _on_user_approval(
        self, session: Session, message: UserApproval
    ) -> None:
        if not session.run_live:
            return
        await self.gate.decide(session, message.actionId, message.approved)

    def _on_tool_result(self, session: Session, message: ToolResult) -> None:
        logger.info(
            "tool_result",
            action_id=message.actionId,
            ok=message.ok,
            error=message.error,
        )
        if not isinstance(message.actionId, str):
            return
        self.broker.settle(
            session, message.actionId, message.ok is True, message.data, message.error
        )
