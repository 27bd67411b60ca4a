"""Closed error taxonomy shared by the broker, the gate and the actuator."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    EXTENSION_NOT_READY = "EXTENSION_NOT_READY"
    NO_ACTIVE_TAB = "NO_ACTIVE_TAB"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"


_CODES = {code.value: code for code in ErrorCode}


def normalize_error_code(value: Any) -> ErrorCode:
    """Map anything outside the taxonomy to EXTENSION_NOT_READY."""
    if isinstance(value, ErrorCode):
        return value
    if isinstance(value, ToolError):
        return value.code
    if isinstance(value, BaseException):
        value = str(value)
    if isinstance(value, str):
        return _CODES.get(value, ErrorCode.EXTENSION_NOT_READY)
    return ErrorCode.EXTENSION_NOT_READY


class ToolError(Exception):
    """A tool invocation ended with one of the taxonomy codes."""

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)

    def to_outcome(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code.value, "message": self.message}


class CandidateError(ToolError):
    """The candidate set does not allow a target-bearing action."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.NOT_FOUND, message)


class ProtocolError(Exception):
    """Envelope rejected at the router; the peer only sees the channel close."""

    def __init__(self, reason: str, *, close_code: int = 1008) -> None:
        self.reason = reason
        self.close_code = close_code
        super().__init__(reason)
