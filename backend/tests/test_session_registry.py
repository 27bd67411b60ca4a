"""Tests for the in-memory session registry."""

from __future__ import annotations

import pytest

from tabpilot.settings import Settings
from tabpilot.store import InMemorySessionRegistry, session_registry

from .conftest import FakeChannel


def test_get_or_create_rebinds_existing_session():
    registry = InMemorySessionRegistry()
    first, second = FakeChannel(), FakeChannel()

    session, created = registry.get_or_create("s", "t1", first)
    again, created_again = registry.get_or_create("s", "t2", second)

    assert created and not created_again
    assert again is session
    assert session.channel is second
    assert session.token == "t2"
    assert registry.sessions_for(first) == []
    assert registry.sessions_for(second) == [session]


def test_new_sessions_use_auto_run_default(monkeypatch):
    monkeypatch.setattr(
        session_registry, "get_settings", lambda: Settings(auto_run_default=True)
    )
    session, _ = InMemorySessionRegistry().get_or_create("s", "t", FakeChannel())
    assert session.auto_run is True
    assert session.run is None
    assert not session.run_live


def test_remove():
    registry = InMemorySessionRegistry()
    registry.get_or_create("s", "t", FakeChannel())

    assert registry.remove("s") is not None
    assert registry.remove("s") is None
    assert registry.all() == []


def test_unsupported_backend(monkeypatch):
    monkeypatch.setattr(session_registry, "_session_registry", None)
    monkeypatch.setattr(
        session_registry,
        "get_settings",
        lambda: Settings(session_registry_backend="redis"),
    )
    with pytest.raises(RuntimeError, match="Unsupported session registry backend"):
        session_registry.get_session_registry()
