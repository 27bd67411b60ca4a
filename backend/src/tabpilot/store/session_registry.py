"""
Session registry backends and factory.
"""

from __future__ import annotations

from ..domain.models import Session
from ..ports import ChannelPort, SessionFactory, SessionRegistryPort
from ..settings import get_settings


def default_session_factory(
    session_id: str, token: str, channel: ChannelPort
) -> Session:
    return Session(
        session_id=session_id,
        token=token,
        channel=channel,
        auto_run=get_settings().auto_run_default,
    )


class InMemorySessionRegistry(SessionRegistryPort):
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get_or_create(
        self,
        session_id: str,
        token: str,
        channel: ChannelPort,
        factory: SessionFactory | None = None,
    ) -> tuple[Session, bool]:
        """Return the session for ``session_id`` and whether it was just created.

        An existing session is rebound to the channel and token it was last
        reached through.
        """
        session = self._sessions.get(session_id)
        if session is not None:
            session.channel = channel
            session.token = token
            return session, False
        session = (factory or default_session_factory)(session_id, token, channel)
        self._sessions[session_id] = session
        return session, True

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions_for(self, channel: ChannelPort) -> list[Session]:
        return [s for s in self._sessions.values() if s.channel is channel]

    def remove(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def all(self) -> list[Session]:
        return list(self._sessions.values())


_session_registry: SessionRegistryPort | None = None


def get_session_registry() -> SessionRegistryPort:
    """Get or create the configured session registry."""
    global _session_registry
    if _session_registry is not None:
        return _session_registry

    settings = get_settings()
    backend = settings.session_registry_backend
    if backend == "memory":
        _session_registry = InMemorySessionRegistry()
        return _session_registry

    raise RuntimeError(
        f"Unsupported session registry backend: {backend}. Only 'memory' is supported."
    )
