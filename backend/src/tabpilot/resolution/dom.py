"""
Document model the resolution engine runs against.

``HtmlDocument`` wraps a BeautifulSoup tree. Without a layout engine,
visibility is judged from the markup: the ``hidden`` attribute, hidden
inputs, inline ``display``/``visibility``/``opacity`` and zero inline sizes.
"""

from __future__ import annotations

import re

import soupsieve
from bs4 import BeautifulSoup, Tag
from bs4.element import PreformattedString

# Tags that never produce a layout box.
_NON_RENDERED = frozenset(
    {"head", "script", "style", "template", "noscript", "meta", "link", "title"}
)
# Elements that have a box even without text content.
_REPLACED = ["button", "canvas", "iframe", "img", "input", "select", "svg", "textarea", "video"]
_ZERO_SIZE_RE = re.compile(r"^0+(\.0+)?(px|em|rem|%|vh|vw)?$")
_WHITESPACE_RE = re.compile(r"\s+")


def parse_inline_style(value: str | None) -> dict[str, str]:
    style: dict[str, str] = {}
    for declaration in (value or "").split(";"):
        name, sep, prop_value = declaration.partition(":")
        if not sep:
            continue
        prop_value = prop_value.replace("!important", "").strip().lower()
        style[name.strip().lower()] = prop_value
    return style


def _attr_text(element: Tag, name: str) -> str:
    value = element.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


class HtmlDocument:
    def __init__(self, html: str, *, url: str = "about:blank", parser: str = "lxml") -> None:
        self.url = url
        self.soup = BeautifulSoup(html, parser)

    def select(self, selector: str) -> list[Tag]:
        """All matches in document order; an invalid selector matches nothing."""
        try:
            return self.soup.select(selector)
        except (soupsieve.SelectorSyntaxError, NotImplementedError, ValueError):
            return []

    def select_one(self, selector: str) -> Tag | None:
        matches = self.select(selector)
        return matches[0] if matches else None

    def count(self, selector: str) -> int:
        return len(self.select(selector))

    def attr(self, element: Tag, name: str) -> str:
        return _attr_text(element, name)

    def text_of(self, element: Tag) -> str:
        """Rendered-text approximation with whitespace collapsed."""
        parts = [
            str(node)
            for node in element.find_all(string=True)
            if not isinstance(node, PreformattedString)
            and not any(
                isinstance(parent, Tag) and parent.name in _NON_RENDERED
                for parent in node.parents
            )
        ]
        return _WHITESPACE_RE.sub(" ", " ".join(parts)).strip()

    def value_of(self, element: Tag) -> str:
        if element.name == "textarea":
            return element.get_text()
        return _attr_text(element, "value")

    def is_visible(self, element: Tag) -> bool:
        if element.name in _NON_RENDERED:
            return False
        if element.name == "input" and _attr_text(element, "type").lower() == "hidden":
            return False

        own_style = parse_inline_style(_attr_text(element, "style"))
        for prop in ("width", "height"):
            if _ZERO_SIZE_RE.match(own_style.get(prop, "x")):
                return False

        visibility: str | None = None
        node: Tag | None = element
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            if node.name in _NON_RENDERED:
                return False
            if node.has_attr("hidden"):
                return False
            style = parse_inline_style(_attr_text(node, "style"))
            if style.get("display") == "none":
                return False
            # The nearest explicit visibility wins.
            if visibility is None and "visibility" in style:
                visibility = style["visibility"]
            opacity = style.get("opacity")
            if opacity is not None and _is_zero(opacity):
                return False
            node = node.parent

        if visibility in ("hidden", "collapse"):
            return False
        return self._has_box(element)

    def _has_box(self, element: Tag) -> bool:
        if element.name in _REPLACED:
            return True
        if element.find(_REPLACED) is not None:
            return True
        return bool(self.text_of(element))


def _is_zero(value: str) -> bool:
    try:
        return float(value) == 0
    except ValueError:
        return False
