"""
Page the actuator operates on: the current document plus navigation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import quote_plus

import httpx
from bs4 import Tag

from ..domain.errors import ErrorCode, ToolError
from ..resolution import HtmlDocument

RESTRICTED_PREFIXES = ("chrome://", "edge://", "about:")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_BARE_DOMAIN_RE = re.compile(r"^[a-z0-9.-]+\.[a-z]{2,}(/.*)?$", re.IGNORECASE)
SEARCH_URL = "https://www.google.com/search?q={query}"


def normalize_url(raw: str) -> str:
    """Complete a bare domain to https and turn free text into a search URL."""
    raw = raw.strip()
    if not raw:
        return ""
    if _SCHEME_RE.match(raw):
        return raw
    if _BARE_DOMAIN_RE.match(raw):
        return f"https://{raw}"
    return SEARCH_URL.format(query=quote_plus(raw))


def is_restricted_url(url: str | None) -> bool:
    if not url:
        return True
    return url.startswith(RESTRICTED_PREFIXES)


@dataclass
class Highlight:
    selector: str
    label: str


@dataclass
class HtmlPage:
    """A single tab holding an ``HtmlDocument``.

    Clicks and highlights are recorded rather than rendered; typing writes the
    value into the document so later lookups see it.
    """

    document: HtmlDocument | None = None
    http_client: httpx.AsyncClient | None = None
    hud: str = ""
    highlights: list[Highlight] = field(default_factory=list)
    clicks: list[str] = field(default_factory=list)

    @classmethod
    def from_html(cls, html: str, url: str = "https://example.test/") -> HtmlPage:
        return cls(document=HtmlDocument(html, url=url))

    def active_document(self) -> HtmlDocument:
        if self.document is None:
            raise ToolError(ErrorCode.NO_ACTIVE_TAB, "no page is loaded")
        if is_restricted_url(self.document.url):
            raise ToolError(ErrorCode.PERMISSION_DENIED, "page cannot be scripted")
        return self.document

    def target(self, selector: str) -> Tag:
        element = self.active_document().select_one(selector) if selector else None
        if element is None:
            raise ToolError(ErrorCode.NOT_FOUND, f"nothing matches {selector!r}")
        return element

    async def navigate(self, url: str, timeout: float) -> dict[str, object]:
        target_url = normalize_url(url)
        if not target_url or is_restricted_url(target_url):
            raise ToolError(ErrorCode.PERMISSION_DENIED, f"cannot open {url!r}")

        client = self.http_client or httpx.AsyncClient(follow_redirects=True)
        try:
            response = await client.get(target_url, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ToolError(ErrorCode.TIMEOUT, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ToolError(ErrorCode.EXTENSION_NOT_READY, str(exc)) from exc
        finally:
            if self.http_client is None:
                await client.aclose()

        self.document = HtmlDocument(response.text, url=str(response.url))
        self.highlights.clear()
        return {"ok": True, "url": target_url}

    def set_hud(self, message: str) -> None:
        self.hud = message

    def highlight(self, selector: str, label: str) -> None:
        self.target(selector)
        self.highlights.append(Highlight(selector=selector, label=label))

    def click(self, selector: str) -> None:
        element = self.target(selector)
        if not self.active_document().is_visible(element):
            raise ToolError(ErrorCode.NOT_FOUND, f"{selector!r} is not visible")
        self.highlights.append(Highlight(selector=selector, label="click target"))
        self.clicks.append(selector)

    def type(self, selector: str, text: str) -> None:
        element = self.target(selector)
        self.highlights.append(Highlight(selector=selector, label="type target"))
        if element.name == "input":
            element["value"] = text
        elif element.name == "textarea" or element.get("contenteditable") == "true":
            element.string = text
        else:
            raise ToolError(ErrorCode.NOT_FOUND, f"{selector!r} does not accept text")
