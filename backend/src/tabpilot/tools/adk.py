from __future__ import annotations

from typing import Any

from google.adk.tools import FunctionTool
from google.adk.tools.tool_context import ToolContext

from ..domain.models import ToolName
from .browser import BrowserToolbox


def build_adk_tools(toolbox: BrowserToolbox) -> list[FunctionTool]:
    """Expose the toolbox to ADK; the function call id doubles as action id."""

    async def browser_navigate(url: str, tool_context: ToolContext) -> dict[str, Any]:
        """Navigate the active browser tab to a URL or domain."""
        return await toolbox.invoke(
            ToolName.NAVIGATE, {"url": url}, action_id=tool_context.function_call_id
        )

    async def browser_find(query: str, tool_context: ToolContext) -> dict[str, Any]:
        """Find candidate elements from a user query. Call this first."""
        return await toolbox.invoke(
            ToolName.FIND, {"query": query}, action_id=tool_context.function_call_id
        )

    async def browser_select_candidate(
        id: str, tool_context: ToolContext
    ) -> dict[str, Any]:
        """
        Select a single candidate from the last browser_find results by id.

        Use this to disambiguate when browser_find returned several candidates.
        """
        return await toolbox.invoke(
            ToolName.SELECT_CANDIDATE,
            {"id": id},
            action_id=tool_context.function_call_id,
        )

    async def browser_highlight(
        selector: str, label: str, tool_context: ToolContext
    ) -> dict[str, Any]:
        """Highlight the selected element on the active page."""
        return await toolbox.invoke(
            ToolName.HIGHLIGHT,
            {"selector": selector, "label": label},
            action_id=tool_context.function_call_id,
        )

    async def browser_click(selector: str, tool_context: ToolContext) -> dict[str, Any]:
        """Click the selected element. May wait for the user's approval."""
        return await toolbox.invoke(
            ToolName.CLICK,
            {"selector": selector},
            action_id=tool_context.function_call_id,
        )

    async def browser_type(
        selector: str, text: str, tool_context: ToolContext
    ) -> dict[str, Any]:
        """Type text into the selected input element. May wait for approval."""
        return await toolbox.invoke(
            ToolName.TYPE,
            {"selector": selector, "text": text},
            action_id=tool_context.function_call_id,
        )

    return [
        FunctionTool(browser_navigate),
        FunctionTool(browser_find),
        FunctionTool(browser_select_candidate),
        FunctionTool(browser_highlight),
        FunctionTool(browser_click),
        FunctionTool(browser_type),
    ]
