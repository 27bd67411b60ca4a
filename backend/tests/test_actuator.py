"""Tests for the page actuator: commands, navigation and the channel client."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from tabpilot.actuator import ActuatorClient, HtmlPage, execute, normalize_url
from tabpilot.actuator.page import is_restricted_url
from tabpilot.domain.errors import ErrorCode, ToolError

PAGE = """
<html><body>
  <form>
    <input name="q" placeholder="Search">
    <textarea name="note"></textarea>
    <button id="go">Search</button>
    <button style="display:none" id="ghost">Ghost</button>
  </form>
</body></html>
"""


@pytest.fixture
def page() -> HtmlPage:
    return HtmlPage.from_html(PAGE)


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https://example.com/a", "https://example.com/a"),
            ("HTTP://example.com", "HTTP://example.com"),
            ("example.com", "https://example.com"),
            ("docs.python.org/3/", "https://docs.python.org/3/"),
            ("latest rust news", "https://www.google.com/search?q=latest+rust+news"),
            ("  ", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_url(raw) == expected

    @pytest.mark.parametrize(
        ("url", "restricted"),
        [
            ("chrome://settings", True),
            ("edge://flags", True),
            ("about:blank", True),
            ("", True),
            (None, True),
            ("https://example.com", False),
        ],
    )
    def test_restricted(self, url, restricted):
        assert is_restricted_url(url) is restricted


class TestExecute:
    def test_find_returns_ranked_candidates(self, page):
        result = execute(page, {"action": "find", "query": "search"})

        assert result["ok"] is True
        candidates = result["data"]["candidates"]
        # The input also matches on its placeholder, so it outranks the button.
        assert [c["selector"] for c in candidates] == ['input[name="q"]', "#go"]
        assert candidates[1] == {"id": "cand-2", "label": "Search", "selector": "#go"}

    def test_find_respects_limit(self, page):
        result = execute(page, {"action": "find", "query": "search"}, limit=1)
        assert len(result["data"]["candidates"]) == 1

    def test_highlight_records_target(self, page):
        result = execute(page, {"action": "highlight", "selector": "#go", "label": "Go"})
        assert result == {"ok": True, "data": {"ok": True}}
        assert page.highlights[-1].selector == "#go"

    def test_click_visible_element(self, page):
        assert execute(page, {"action": "click", "selector": "#go"})["ok"] is True
        assert page.clicks == ["#go"]

    @pytest.mark.parametrize("selector", ["#ghost", "#missing", "", "div["])
    def test_click_needs_visible_match(self, page, selector):
        result = execute(page, {"action": "click", "selector": selector})
        assert result == {"ok": False, "error": "NOT_FOUND"}
        assert page.clicks == []

    def test_type_into_input_and_textarea(self, page):
        execute(page, {"action": "type", "selector": 'input[name="q"]', "text": "rust"})
        execute(page, {"action": "type", "selector": 'textarea[name="note"]', "text": "hi"})

        document = page.active_document()
        assert document.value_of(document.select_one("input")) == "rust"
        assert document.value_of(document.select_one("textarea")) == "hi"

    def test_type_into_button_is_rejected(self, page):
        result = execute(page, {"action": "type", "selector": "#go", "text": "x"})
        assert result["error"] == "NOT_FOUND"

    def test_hud(self, page):
        assert execute(page, {"action": "hud", "message": "working"})["ok"] is True
        assert page.hud == "working"

    def test_unknown_action(self, page):
        result = execute(page, {"action": "scroll"})
        assert result == {"ok": False, "error": "EXTENSION_NOT_READY"}

    def test_no_page_loaded(self):
        result = execute(HtmlPage(), {"action": "find", "query": "x"})
        assert result == {"ok": False, "error": "NO_ACTIVE_TAB"}

    def test_restricted_page(self):
        page = HtmlPage.from_html("<button>Reset</button>", url="chrome://settings")
        result = execute(page, {"action": "click", "selector": "button"})
        assert result == {"ok": False, "error": "PERMISSION_DENIED"}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestNavigate:
    @pytest.mark.asyncio
    async def test_loads_document(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "example.com"
            return httpx.Response(200, text="<button>Sign in</button>")

        page = HtmlPage(http_client=mock_client(handler))
        result = await page.navigate("example.com", timeout=1.0)

        assert result == {"ok": True, "url": "https://example.com"}
        assert page.active_document().count("button") == 1

    @pytest.mark.asyncio
    async def test_empty_target(self):
        page = HtmlPage(http_client=mock_client(lambda request: httpx.Response(200)))
        with pytest.raises(ToolError) as excinfo:
            await page.navigate("   ", timeout=1.0)
        assert excinfo.value.code is ErrorCode.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_http_error(self):
        page = HtmlPage(http_client=mock_client(lambda request: httpx.Response(503)))
        with pytest.raises(ToolError) as excinfo:
            await page.navigate("https://example.com", timeout=1.0)
        assert excinfo.value.code is ErrorCode.EXTENSION_NOT_READY

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        page = HtmlPage(http_client=mock_client(handler))
        with pytest.raises(ToolError) as excinfo:
            await page.navigate("https://example.com", timeout=0.1)
        assert excinfo.value.code is ErrorCode.TIMEOUT


class FakeConnection:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        pass


def make_client(page: HtmlPage, approve=None, events=None) -> ActuatorClient:
    async def deny(request):
        return False

    client = ActuatorClient(
        url="ws://127.0.0.1:3210/ws",
        session_id="session-1",
        token="secret",
        page=page,
        approve=approve or deny,
        on_event=events.append if events is not None else None,
    )
    client._ws = FakeConnection()
    return client


def frame(kind: str, **fields) -> str:
    return json.dumps({"type": kind, "sessionId": "session-1", "token": "secret", **fields})


class TestActuatorClient:
    @pytest.mark.asyncio
    async def test_tool_request_is_executed_and_answered(self, page):
        client = make_client(page)

        await client.execute_tool_request(
            {
                "actionId": "a1",
                "tool": "find",
                "params": {"query": "search"},
                "ui": {"label": "finding search"},
                "timeoutMs": 5000,
            }
        )

        (result,) = client._ws.sent
        assert result["type"] == "tool_result"
        assert result["actionId"] == "a1"
        assert result["ok"] is True
        assert result["data"]["candidates"][1]["selector"] == "#go"
        assert result["sessionId"] == "session-1"
        assert result["token"] == "secret"
        assert page.hud == "Done"

    @pytest.mark.asyncio
    async def test_failed_tool_request_reports_code(self, page):
        client = make_client(page)

        await client.execute_tool_request(
            {"actionId": "a2", "tool": "click", "params": {"selector": "#ghost"}}
        )

        (result,) = client._ws.sent
        assert result == {
            "sessionId": "session-1",
            "token": "secret",
            "type": "tool_result",
            "actionId": "a2",
            "ok": False,
            "error": "NOT_FOUND",
        }
        assert page.hud == "Failed: NOT_FOUND"

    @pytest.mark.asyncio
    async def test_slow_tool_times_out(self, page):
        client = make_client(page)

        async def never(request, timeout):
            await asyncio.Event().wait()

        client._run_tool = never
        await client.execute_tool_request({"actionId": "a3", "tool": "find", "timeoutMs": 20})

        assert client._ws.sent[0]["error"] == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_frames_for_other_sessions_are_ignored(self, page):
        events: list[dict] = []
        client = make_client(page, events=events)

        await client.handle_frame(
            json.dumps({"type": "assistant_final", "sessionId": "other", "token": "secret", "text": "x"})
        )
        await client.handle_frame("not json")

        assert events == []
        assert not client.turn_done.is_set()

    @pytest.mark.asyncio
    async def test_final_ends_turn(self, page):
        events: list[dict] = []
        client = make_client(page, events=events)

        await client.handle_frame(frame("assistant_delta", textDelta="Hi"))
        await client.handle_frame(frame("assistant_final", text="Hi there"))

        assert [e["type"] for e in events] == ["assistant_delta", "assistant_final"]
        assert client.turn_done.is_set()

    @pytest.mark.asyncio
    async def test_approval_request_is_answered(self, page):
        async def approve(request):
            return request["label"] == "clicking Search"

        client = make_client(page, approve=approve)
        await client.handle_frame(
            frame("approval_request", actionId="a4", tool="click", label="clicking Search")
        )
        while not client._ws.sent:
            await asyncio.sleep(0.001)

        assert client._ws.sent[0]["type"] == "user_approval"
        assert client._ws.sent[0]["actionId"] == "a4"
        assert client._ws.sent[0]["approved"] is True

    @pytest.mark.asyncio
    async def test_user_message_carries_auto_run(self, page):
        client = make_client(page)
        client.auto_run = True
        await client.send_user_message("click search")
        await client.stop()

        message, cancel = client._ws.sent
        assert message["type"] == "user_message"
        assert message["autoRun"] is True
        assert cancel["type"] == "cancel"


def test_cli_requires_token(monkeypatch):
    from click.testing import CliRunner

    from tabpilot.actuator.cli import main

    monkeypatch.delenv("TABPILOT_PAIRING_TOKEN", raising=False)
    result = CliRunner().invoke(main, ["click search"])

    assert result.exit_code != 0
    assert "--token" in result.output
