from __future__ import annotations

from .browser import TOOL_HANDLERS, BrowserToolbox, parse_find_result

__all__ = ["TOOL_HANDLERS", "BrowserToolbox", "parse_find_result"]
