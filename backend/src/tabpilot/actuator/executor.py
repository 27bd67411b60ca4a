"""
Page-side command executor.

A command names an action (``hud``, ``find``, ``highlight``, ``click``,
``type``) and its parameters; the answer is ``{"ok": True, "data": ...}`` or
``{"ok": False, "error": <code>}``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..domain.errors import ErrorCode, ToolError
from ..logging import get_logger
from ..resolution import MAX_CANDIDATES, resolve
from .page import HtmlPage

logger = get_logger(__name__)

Command = dict[str, Any]


def _str_param(command: Command, key: str) -> str:
    value = command.get(key)
    return "" if value is None else str(value)


def _hud(page: HtmlPage, command: Command, limit: int) -> dict[str, Any]:
    page.set_hud(_str_param(command, "message"))
    return {"ok": True}


def _find(page: HtmlPage, command: Command, limit: int) -> dict[str, Any]:
    candidates = resolve(
        page.active_document(), _str_param(command, "query"), limit=limit
    )
    return {"candidates": [candidate.to_dict() for candidate in candidates]}


def _highlight(page: HtmlPage, command: Command, limit: int) -> dict[str, Any]:
    page.highlight(_str_param(command, "selector"), _str_param(command, "label"))
    return {"ok": True}


def _click(page: HtmlPage, command: Command, limit: int) -> dict[str, Any]:
    page.click(_str_param(command, "selector"))
    return {"ok": True}


def _type(page: HtmlPage, command: Command, limit: int) -> dict[str, Any]:
    page.type(_str_param(command, "selector"), _str_param(command, "text"))
    return {"ok": True}


ACTIONS: dict[str, Callable[[HtmlPage, Command, int], dict[str, Any]]] = {
    "hud": _hud,
    "find": _find,
    "highlight": _highlight,
    "click": _click,
    "type": _type,
}


def execute(
    page: HtmlPage, command: Command, *, limit: int = MAX_CANDIDATES
) -> dict[str, Any]:
    action = command.get("action")
    handler = ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        return {"ok": False, "error": ErrorCode.EXTENSION_NOT_READY.value}
    try:
        return {"ok": True, "data": handler(page, command, limit)}
    except ToolError as exc:
        return {"ok": False, "error": exc.code.value}
    except Exception:
        logger.exception("actuator_command_failed", action=action)
        return {"ok": False, "error": ErrorCode.EXTENSION_NOT_READY.value}
