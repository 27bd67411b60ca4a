"""End-to-end tests for the websocket endpoint and health check."""

from __future__ import annotations

import time

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from tabpilot.main import build_router, create_app
from tabpilot.router import INVALID_TOKEN_CLOSE_CODE
from tabpilot.store import InMemorySessionRegistry

from .conftest import TOKEN, FakeDriver

EXTENSION_ORIGIN = {"origin": "chrome-extension://abcdefghijklmnop"}


@pytest.fixture
def client(settings):
    router = build_router(
        settings=settings,
        driver_factory=lambda session, toolbox: FakeDriver(),
        registry=InMemorySessionRegistry(),
    )
    with TestClient(create_app(router=router, settings=settings)) as test_client:
        yield test_client


def message(text: str, token: str = TOKEN) -> dict:
    return {"type": "user_message", "sessionId": "s-1", "token": token, "text": text}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "model": "gemini-2.5-flash", "sessions": 0}


def test_user_message_round_trip(client):
    with client.websocket_connect("/ws", headers=EXTENSION_ORIGIN) as ws:
        ws.send_json(message("hello"))
        frames = []
        while not frames or frames[-1]["type"] != "assistant_final":
            frames.append(ws.receive_json())

    assert frames[0] == {
        "type": "step_event",
        "sessionId": "s-1",
        "token": TOKEN,
        "step": "Started run",
    }
    assert frames[-1]["text"] == "echo: hello"


def test_connection_without_origin_is_accepted(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json(message("hi"))
        assert ws.receive_json()["type"] == "step_event"


def test_foreign_origin_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws", headers={"origin": "https://evil.test"}):
            pass
    assert excinfo.value.code == 1008


def test_wrong_token_closes_with_4001(client):
    with client.websocket_connect("/ws", headers=EXTENSION_ORIGIN) as ws:
        ws.send_json(message("hello", token="nope"))
        with pytest.raises(WebSocketDisconnect) as excinfo:
            ws.receive_json()
    assert excinfo.value.code == INVALID_TOKEN_CLOSE_CODE


def test_malformed_frame_closes_with_1008(client):
    with client.websocket_connect("/ws", headers=EXTENSION_ORIGIN) as ws:
        ws.send_text("{not json")
        with pytest.raises(WebSocketDisconnect) as excinfo:
            ws.receive_json()
    assert excinfo.value.code == 1008


def test_disconnect_removes_session(client):
    with client.websocket_connect("/ws", headers=EXTENSION_ORIGIN) as ws:
        ws.send_json(message("hi"))
        while ws.receive_json()["type"] != "assistant_final":
            pass
        assert client.get("/health").json()["sessions"] == 1

    # Teardown runs in the server task after the close frame.
    for _ in range(100):
        if client.get("/health").json()["sessions"] == 0:
            break
        time.sleep(0.01)
    assert client.get("/health").json()["sessions"] == 0
