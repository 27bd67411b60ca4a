"""
Lifecycle of driver turns: one run per session, turns strictly in order.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from typing import Any

from structlog.contextvars import bound_contextvars

from .adapters.wire import append_step, send_delta, send_final
from .approval import ApprovalGate
from .broker import ToolCallBroker
from .domain.models import RunState, Session
from .logging import get_logger
from .ports import DriverEvent, DriverPort, SessionRegistryPort
from .settings import Settings, get_settings
from .tools import BrowserToolbox

logger = get_logger(__name__)

DriverFactory = Callable[[Session, BrowserToolbox], DriverPort]

KEEPALIVE_DELTA = "..."
CANCELLED_TEXT = "Cancelled by user."


class RunController:
    def __init__(
        self,
        *,
        registry: SessionRegistryPort,
        broker: ToolCallBroker,
        gate: ApprovalGate,
        driver_factory: DriverFactory,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.gate = gate
        self.driver_factory = driver_factory
        self.settings = settings or get_settings()
        self._background: set[asyncio.Task[None]] = set()

    def attach(self, session: Session) -> None:
        """Wire a freshly created session to its driver and turn worker."""
        toolbox = BrowserToolbox(session, self.broker, self.gate)
        driver = self.driver_factory(session, toolbox)
        session.driver = driver
        session.unsubscribers.append(
            driver.subscribe(lambda event: self._on_driver_event(session, event))
        )
        session.worker = asyncio.create_task(
            self._worker(session), name=f"turns:{session.session_id}"
        )
        logger.info("session_created", session_id=session.session_id)

    def enqueue(self, session: Session, text: str) -> None:
        session.turns.put_nowait(text)

    async def _worker(self, session: Session) -> None:
        while True:
            text = await session.turns.get()
            try:
                with bound_contextvars(session_id=session.session_id):
                    await self.handle_user_message(session, text)
            except Exception as exc:
                logger.exception("turn_failed", session_id=session.session_id)
                await send_final(session, f"Failed: {exc}")
            finally:
                session.turns.task_done()

    async def handle_user_message(self, session: Session, text: str) -> None:
        driver = session.driver
        if driver is None:
            raise RuntimeError("Session not ready")

        run = RunState()
        session.run = run
        session.candidates = []
        logger.info("run_started", session_id=session.session_id)
        await append_step(session, "Started run")

        keepalive = asyncio.create_task(self._keepalive(session, run))
        try:
            final_text = await asyncio.wait_for(
                driver.run_turn(text), timeout=self.settings.turn_timeout_s
            )
            if run.cancelled:
                return
            await self._finish(session, run, final_text.strip() or "Done.")
        except TimeoutError:
            if run.cancelled:
                return
            logger.warning("run_timed_out", session_id=session.session_id)
            await self._finish(
                session,
                run,
                f"Failed: no answer within {self.settings.turn_timeout_s:g}s",
            )
        except Exception as exc:
            if run.cancelled:
                return
            logger.exception("driver_failed", session_id=session.session_id)
            await self._finish(session, run, f"Failed: {exc}")
        finally:
            keepalive.cancel()
            if session.run is run:
                session.run = None
            logger.info(
                "run_finished",
                session_id=session.session_id,
                cancelled=run.cancelled,
                steps=len(run.steps),
            )

    async def cancel(self, session: Session) -> None:
        run = session.run
        if run is None or run.cancelled:
            return

        run.cancelled = True
        logger.info("run_cancelled", session_id=session.session_id)
        self.broker.cancel_all(session)
        self.gate.cancel(session)

        if session.driver is not None:
            try:
                await session.driver.abort()
            except Exception:
                logger.warning(
                    "driver_abort_failed", session_id=session.session_id, exc_info=True
                )

        await self._finish(session, run, CANCELLED_TEXT)

    async def teardown(self, session: Session, reason: str) -> None:
        if session.run is not None:
            session.run.cancelled = True
        self.broker.cancel_all(session)
        self.gate.cancel(session)

        for unsubscribe in session.unsubscribers:
            unsubscribe()
        session.unsubscribers.clear()

        worker = session.worker
        session.worker = None
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

        if session.driver is not None:
            try:
                await session.driver.close()
            except Exception:
                logger.warning(
                    "driver_close_failed", session_id=session.session_id, exc_info=True
                )

        self.registry.remove(session.session_id)
        logger.info("session_closed", session_id=session.session_id, reason=reason)

    async def _finish(self, session: Session, run: RunState, text: str) -> None:
        if run.final_sent:
            return
        run.final_sent = True
        await send_final(session, text)

    async def _keepalive(self, session: Session, run: RunState) -> None:
        interval = self.settings.keepalive_interval_s
        while True:
            await asyncio.sleep(interval)
            if run.cancelled or run.final_sent:
                return
            await send_delta(session, KEEPALIVE_DELTA)

    def _on_driver_event(self, session: Session, event: DriverEvent) -> None:
        run = session.run
        if run is None or run.cancelled or run.final_sent:
            return
        if event.kind == "delta":
            if event.text:
                self._spawn(self._relay(session, run, delta=event.text))
        elif event.kind == "tool_start":
            self._spawn(self._relay(session, run, step=f"Tool start: {event.tool_name}"))
        elif event.kind == "tool_complete":
            status = "ok" if event.success else f"failed ({event.error or 'error'})"
            self._spawn(
                self._relay(
                    session, run, step=f"Tool complete: {event.tool_call_id} {status}"
                )
            )

    async def _relay(
        self,
        session: Session,
        run: RunState,
        *,
        delta: str | None = None,
        step: str | None = None,
    ) -> None:
        # Re-checked here: the final answer may have gone out since scheduling.
        if run.cancelled or run.final_sent or session.run is not run:
            return
        if delta is not None:
            await send_delta(session, delta)
        if step is not None:
            await append_step(session, step)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
