from .session_registry import (
    InMemorySessionRegistry,
    default_session_factory,
    get_session_registry,
)

__all__ = [
    "InMemorySessionRegistry",
    "default_session_factory",
    "get_session_registry",
]
