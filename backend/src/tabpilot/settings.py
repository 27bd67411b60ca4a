"""
Process configuration loaded from the environment (prefix ``TABPILOT_``).
"""

from __future__ import annotations

import uuid
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DANGEROUS_ACTION_PATTERN = (
    r"(delete|remove|purchase|buy|checkout|send|payment|pay|place order|"
    r"confirm order|submit payment|transfer|confirm|submit|withdraw|irreversible)"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TABPILOT_",
        env_file=".env",
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 3210
    ws_path: str = "/ws"

    # Generated once per process when not configured.
    pairing_token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    allowed_origin_prefixes: list[str] = [
        "chrome-extension://",
        "moz-extension://",
    ]

    tool_timeout_s: float = 5.0
    navigate_timeout_s: float = 30.0
    action_timeout_s: float = 60.0
    turn_timeout_s: float = 120.0
    keepalive_interval_s: float = 20.0

    max_candidates: int = 8
    dangerous_action_pattern: str = DEFAULT_DANGEROUS_ACTION_PATTERN
    auto_run_default: bool = False

    llm_model: str = "gemini-2.5-flash"
    adk_app_name: str = "tabpilot"
    adk_user_id: str = "tabpilot-user"

    session_registry_backend: str = "memory"

    log_level: str = "INFO"
    log_json: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
