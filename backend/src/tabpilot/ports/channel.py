"""
Port definition for the bidirectional message channel of a session.
"""

from __future__ import annotations

from typing import Any, Protocol


class ChannelPort(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_json(self, payload: dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...
