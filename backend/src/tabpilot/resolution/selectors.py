"""
Selector synthesis: the most durable locator that matches exactly one element.

Attribute-based selectors are tried before structural paths because they
survive reflows and unrelated markup changes.
"""

from __future__ import annotations

import soupsieve
from bs4 import BeautifulSoup, Tag

from .dom import HtmlDocument

MAX_PATH_DEPTH = 5
TEST_ID_ATTRIBUTES = ("data-testid", "data-test-id")


def css_escape(value: str) -> str:
    return soupsieve.escape(value)


def attr_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def is_unique(document: HtmlDocument, selector: str) -> bool:
    return document.count(selector) == 1


def _attribute_selectors(document: HtmlDocument, element: Tag):
    tag = element.name
    element_id = document.attr(element, "id")
    if element_id:
        yield f"#{css_escape(element_id)}"

    for attribute in ("name", "aria-label"):
        value = document.attr(element, attribute)
        if value:
            yield f'{tag}[{attribute}="{attr_escape(value)}"]'

    for attribute in TEST_ID_ATTRIBUTES:
        value = document.attr(element, attribute)
        if value:
            yield f'{tag}[{attribute}="{attr_escape(value)}"]'
            break

    role = document.attr(element, "role")
    if role:
        yield f'{tag}[role="{attr_escape(role)}"]'


def _position_among_same_tag(element: Tag, parent: Tag) -> int:
    # Tag equality is structural, so identical siblings must be told apart by identity.
    siblings = parent.find_all(element.name, recursive=False)
    for index, sibling in enumerate(siblings, 1):
        if sibling is element:
            return index
    return 1


def structural_path(document: HtmlDocument, element: Tag) -> str:
    """Ancestor-qualified ``nth-of-type`` path, returned as soon as it is unique."""
    segments: list[str] = []
    current: Tag | None = element
    while isinstance(current, Tag) and len(segments) < MAX_PATH_DEPTH:
        parent = current.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            break
        index = _position_among_same_tag(current, parent)
        segments.insert(0, f"{current.name}:nth-of-type({index})")
        selector = " > ".join(segments)
        if is_unique(document, selector):
            return selector
        current = parent
    return " > ".join(segments) or element.name


def synthesize(document: HtmlDocument, element: Tag) -> str:
    for selector in _attribute_selectors(document, element):
        if is_unique(document, selector):
            return selector
    return structural_path(document, element)
