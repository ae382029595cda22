"""Settings via pydantic-settings with TABPILOT_ env prefix.

Credential fields use validation_alias to read the same unprefixed
ANTHROPIC_* env vars other Anthropic tooling uses.  RunSettings carries
the four options a caller may override per orchestration call.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunSettings(BaseModel):
    """Per-call loop options (history/loop windows, summarization, turn budget)."""

    history_window_size: int = Field(10, ge=1)
    loop_window_size: int = Field(15, ge=2)
    enable_summarization: bool = True
    max_turns: int = Field(10, ge=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TABPILOT_", env_file=".env")

    log_level: str = "info"

    # Credentials
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    # Bearer token takes precedence over api_key (x-api-key)
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")
    api_base_url: str = "https://api.anthropic.com"

    # LLM
    model: str = "claude-sonnet-4-5-20250514"
    max_tokens: int = 4096
    summary_model: str = "claude-3-5-haiku-20241022"
    summary_max_tokens: int = 500

    # Timeouts (seconds)
    api_timeout: float = 180.0  # overall ceiling per model call
    api_timeout_connect: float = 10.0
    summary_timeout: float = 30.0
    tool_delay: float = 0.5  # pause between consecutive tool calls

    # Loop defaults (overridable per call via RunSettings)
    history_window_size: int = 10
    loop_window_size: int = 15
    enable_summarization: bool = True
    summarization_threshold: int = 8
    max_turns: int = 10

    @model_validator(mode="after")
    def _validate_windows(self) -> "Settings":
        if self.history_window_size < 1:
            raise ValueError("history_window_size must be >= 1")
        if self.loop_window_size < 2:
            raise ValueError(
                "loop_window_size must be >= 2 to hold a tool_use/tool_result pair"
            )
        if self.max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        return self

    def run_settings(self, overrides: RunSettings | dict[str, Any] | None = None) -> RunSettings:
        """Resolve per-call overrides against the configured defaults.

        Keys absent from a dict override (or unset on a RunSettings) fall
        back to this Settings instance.
        """
        base: dict[str, Any] = {
            "history_window_size": self.history_window_size,
            "loop_window_size": self.loop_window_size,
            "enable_summarization": self.enable_summarization,
            "max_turns": self.max_turns,
        }
        if isinstance(overrides, RunSettings):
            base.update(overrides.model_dump(exclude_unset=True))
        elif overrides:
            base.update({k: v for k, v in overrides.items() if k in base and v is not None})
        return RunSettings(**base)
