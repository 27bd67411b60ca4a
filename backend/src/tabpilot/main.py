"""
FastAPI application exposing the session channel over a websocket.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from .approval import ApprovalGate
from .broker import ToolCallBroker
from .logging import configure_logging, get_logger
from .ports import SessionRegistryPort
from .router import ProtocolRouter
from .run_controller import DriverFactory, RunController
from .settings import Settings, get_settings
from .store import get_session_registry

configure_logging()
logger = get_logger(__name__)


class WebSocketChannel:
    """``ChannelPort`` over a Starlette websocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, payload: dict[str, Any]) -> None:
        if not self.is_open:
            return
        try:
            await self.websocket.send_json(payload)
        except (WebSocketDisconnect, RuntimeError):
            logger.info("ws_send_dropped", type=payload.get("type"))
            self._closed = True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.is_open:
            self._closed = True
            return
        self._closed = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError:
            logger.debug("ws_close_failed", code=code)

    def mark_closed(self) -> None:
        self._closed = True


def build_router(
    *,
    settings: Settings | None = None,
    driver_factory: DriverFactory | None = None,
    registry: SessionRegistryPort | None = None,
) -> ProtocolRouter:
    settings = settings or get_settings()
    if driver_factory is None:
        from .agent import create_adk_driver

        driver_factory = create_adk_driver

    registry = registry or get_session_registry()
    broker = ToolCallBroker(settings)
    gate = ApprovalGate(settings)
    controller = RunController(
        registry=registry,
        broker=broker,
        gate=gate,
        driver_factory=driver_factory,
        settings=settings,
    )
    return ProtocolRouter(
        registry=registry,
        broker=broker,
        gate=gate,
        controller=controller,
        settings=settings,
    )


def _origin_allowed(origin: str, settings: Settings) -> bool:
    if not origin:
        return True
    return any(origin.startswith(prefix) for prefix in settings.allowed_origin_prefixes)


def create_app(
    router: ProtocolRouter | None = None, settings: Settings | None = None
) -> FastAPI:
    settings = settings or get_settings()
    router = router or build_router(settings=settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "backend_ready",
            url=f"ws://{settings.host}:{settings.port}{settings.ws_path}",
            model=settings.llm_model,
        )
        if "pairing_token" not in settings.model_fields_set:
            logger.warning(
                "pairing_token_generated",
                token=settings.pairing_token,
                hint="Copy the pairing token into the extension settings "
                "or set TABPILOT_PAIRING_TOKEN.",
            )
        yield
        logger.info("shutting_down")
        await router.shutdown()

    app = FastAPI(
        title="tabpilot",
        description="Tool-call broker between a browser driver and a page actuator",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.router = router

    @app.websocket(settings.ws_path)
    async def session_channel(websocket: WebSocket) -> None:
        origin = websocket.headers.get("origin", "")
        if not _origin_allowed(origin, settings):
            logger.warning("ws_origin_rejected", origin=origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        client = websocket.client
        logger.info("ws_connected", peer=client.host if client else "unknown")
        channel = WebSocketChannel(websocket)
        try:
            while channel.is_open:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await router.route(channel, raw)
        except WebSocketDisconnect:
            pass
        finally:
            channel.mark_closed()
            await router.disconnect(channel)
            logger.info("ws_disconnected")

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {
            "status": "ok",
            "model": settings.llm_model,
            "sessions": len(router.registry.all()),
        }

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
