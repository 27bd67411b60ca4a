"""User turn text conversion to driver prompts and ADK content."""

from __future__ import annotations

import re

from google.genai import types

_DOMAIN_RE = re.compile(r"\b([a-z0-9-]+\.[a-z]{2,}(?:\.[a-z]{2,})?)\b", re.IGNORECASE)


def extract_domain_hint(text: str) -> str | None:
    """Return the first domain-looking token of the user's text, lower-cased."""
    match = _DOMAIN_RE.search(text)
    if match is None:
        return None
    return match.group(1).lower()


def build_turn_prompt(text: str) -> str:
    domain = extract_domain_hint(text)
    lines = [
        "User request:",
        text,
        "",
        "Follow the mandatory browser workflow in system instructions.",
        "When browser_find has multiple candidates and a click/type action is "
        "needed, ask the user to pick an id and stop.",
        "If the request is information-only, summarize relevant candidates "
        "instead of clicking.",
    ]
    if domain:
        lines.append(
            f"The user referenced site {domain}. Call browser_navigate with "
            f"{domain} before searching unless already on that site."
        )
    return "\n".join(lines)


def build_user_content(text: str) -> types.Content:
    return types.Content(role="user", parts=[types.Part(text=text)])
