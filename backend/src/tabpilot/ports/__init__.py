from .channel import ChannelPort
from .driver import DriverEvent, DriverListener, DriverPort
from .session_registry import Session, SessionFactory, SessionRegistryPort

__all__ = [
    "ChannelPort",
    "DriverEvent",
    "DriverListener",
    "DriverPort",
    "Session",
    "SessionFactory",
    "SessionRegistryPort",
]
