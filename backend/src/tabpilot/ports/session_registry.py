"""
Port definition for the process-wide session table.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from ..domain.models import Session
from .channel import ChannelPort

SessionFactory = Callable[[str, str, ChannelPort], Session]


class SessionRegistryPort(Protocol):
    def get_or_create(
        self,
        session_id: str,
        token: str,
        channel: ChannelPort,
        factory: SessionFactory | None = None,
    ) -> tuple[Session, bool]: ...

    def get(self, session_id: str) -> Session | None: ...

    def sessions_for(self, channel: ChannelPort) -> list[Session]: ...

    def remove(self, session_id: str) -> Session | None: ...

    def all(self) -> list[Session]: ...


__all__ = ["Session", "SessionFactory", "SessionRegistryPort"]
