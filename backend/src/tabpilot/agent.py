"""
ADK agent definition for the browser driver.
"""

from __future__ import annotations

from google.adk.agents import LlmAgent
from google.adk.apps.app import App
from google.adk.runners import Runner
from google.adk.sessions.base_session_service import BaseSessionService
from google.adk.sessions.in_memory_session_service import InMemorySessionService

from .adapters.adk_driver import AdkDriver
from .domain.models import Session
from .settings import Settings, get_settings
from .tools import BrowserToolbox
from .tools.adk import build_adk_tools

_WORKFLOW = [
    "If the user mentions a site/domain and the current page is not that site, "
    "call browser_navigate first.",
    "Then call browser_find.",
    "If browser_find returns 0 candidates, ask the user for a better query.",
    "If browser_find returns multiple candidates and you need to click/type, call "
    "browser_select_candidate with the candidate id to disambiguate, then proceed. "
    "If unsure which candidate the user wants, ask them to pick an id first.",
    "If exactly one candidate is selected, call browser_highlight before any "
    "click/type action.",
    "After highlight, give a short one-sentence explanation.",
    "Then call browser_click or browser_type depending on the user request.",
    "Confirm completion with exactly what action was taken and the selector.",
]


def build_system_prompt() -> str:
    steps = "\n".join(f"{index}) {step}" for index, step in enumerate(_WORKFLOW, 1))
    return f"""\
You are a browser interaction agent controlled by strict rules.

## Workflow for each actionable interaction request

{steps}

For information lookup requests (for example: find news about topic X), you may
use browser_find to collect relevant candidate labels and summarize them
without clicking.

## Safety

- Never perform dangerous clicks (delete, purchase, send, submit payment)
  without explicit user approval. The system pauses such clicks for approval;
  call the tool directly instead of asking in plain text.
- A tool result with "ok": false carries an error code. PERMISSION_DENIED means
  the user refused; do not retry the same action.
- If unsure, ask.

## Output style

- Be concise.
"""


def create_runner(
    *,
    toolbox: BrowserToolbox,
    settings: Settings,
    session_service: BaseSessionService | None = None,
) -> Runner:
    agent = LlmAgent(
        name="browser_agent",
        model=settings.llm_model,
        description="Operates the user's browser tab through a constrained toolset",
        instruction=build_system_prompt(),
        tools=build_adk_tools(toolbox),
    )
    app = App(name=settings.adk_app_name, root_agent=agent)
    if session_service is None:
        session_service = InMemorySessionService()
    return Runner(app=app, session_service=session_service)


_session_service = InMemorySessionService()


def create_adk_driver(session: Session, toolbox: BrowserToolbox) -> AdkDriver:
    settings = get_settings()
    runner = create_runner(
        toolbox=toolbox, settings=settings, session_service=_session_service
    )
    return AdkDriver(
        session_id=session.session_id,
        runner=runner,
        user_id=settings.adk_user_id,
    )
