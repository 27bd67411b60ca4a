"""
Rank the visible interactive elements of a document against a free-text query.
"""

from __future__ import annotations

from bs4 import Tag

from ..domain.models import Candidate
from .dom import HtmlDocument
from .selectors import synthesize

MAX_CANDIDATES = 8
LABEL_MAX_CHARS = 120

INTERACTIVE_SELECTOR = ",".join(
    [
        "button",
        "a[href]",
        "a[role='button']",
        "input",
        "textarea",
        "select",
        "[role='button']",
        "[aria-label]",
        "[name]",
        "[placeholder]",
        "[contenteditable='true']",
    ]
)

# Full-query containment, per field group.
LABEL_MATCH = 80
NAME_OR_PLACEHOLDER_MATCH = 50
ROLE_MATCH = 20
HREF_MATCH = 20
# Per-token containment.
LABEL_TOKEN = 15
NAME_OR_PLACEHOLDER_TOKEN = 10
ROLE_TOKEN = 5
HREF_TOKEN = 5
VISIBLE_BONUS = 10


def normalize_text(value: str | None) -> str:
    return (value or "").lower().strip()


def element_label(document: HtmlDocument, element: Tag) -> str:
    aria = document.attr(element, "aria-label").strip()
    if aria:
        return aria

    text = document.text_of(element)
    if text:
        return text[:LABEL_MAX_CHARS]

    if element.name == "input":
        value = document.value_of(element).strip()
        if value:
            return value

    for attribute in ("placeholder", "name"):
        value = document.attr(element, attribute).strip()
        if value:
            return value

    return element.name


def score_element(document: HtmlDocument, element: Tag, query: str) -> int:
    """Score ``element`` against an already normalized query."""
    if not query:
        return 0

    label = normalize_text(element_label(document, element))
    name = normalize_text(document.attr(element, "name"))
    placeholder = normalize_text(document.attr(element, "placeholder"))
    role = normalize_text(document.attr(element, "role"))
    href = normalize_text(document.attr(element, "href"))

    score = 0
    if query in label:
        score += LABEL_MATCH
    if query in name or query in placeholder:
        score += NAME_OR_PLACEHOLDER_MATCH
    if query in role:
        score += ROLE_MATCH
    if query in href:
        score += HREF_MATCH

    for token in query.split():
        if token in label:
            score += LABEL_TOKEN
        if token in name or token in placeholder:
            score += NAME_OR_PLACEHOLDER_TOKEN
        if token in role:
            score += ROLE_TOKEN
        if token in href:
            score += HREF_TOKEN

    # No text match means no candidate, however visible the element is.
    if score and document.is_visible(element):
        score += VISIBLE_BONUS
    return score


def resolve(
    document: HtmlDocument, query: str, *, limit: int = MAX_CANDIDATES
) -> list[Candidate]:
    """Return at most ``limit`` candidates, best first, ties in document order."""
    normalized = normalize_text(query)
    if not normalized:
        return []

    scored: list[tuple[int, Tag]] = []
    for element in document.select(INTERACTIVE_SELECTOR):
        if not document.is_visible(element):
            continue
        score = score_element(document, element, normalized)
        if score > 0:
            scored.append((score, element))

    # sorted() is stable, so equal scores keep document order.
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)[:limit]
    return [
        Candidate(
            id=f"cand-{index}",
            label=element_label(document, element),
            selector=synthesize(document, element),
        )
        for index, (_score, element) in enumerate(ranked, 1)
    ]
