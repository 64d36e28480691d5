"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "Du bist ein hilfreicher KI-Assistent. Antworte auf Deutsch und sei präzise und nützlich."
)


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Co-Pilot Board configuration. All values come from environment variables.

    Build one instance at process start and hand it to each component.
    """

    # Anthropic
    anthropic_api_key: str = Field(default="")
    chat_model: str = Field(default="claude-sonnet-4-5-20250929")
    analysis_model: str = Field(default="claude-haiku-4-5-20251001")
    chat_max_tokens: int = Field(default=1000)
    chat_temperature: float = Field(default=0.7)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    # Database
    database_path: Path = Field(default=Path("data/copilot_board.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # HTTP
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    cors_allow_origin: str = Field(default="*")

    # Conversation context
    context_window_messages: int = Field(default=10)

    # Rolling summary
    summary_interval: int = Field(default=5)
    summary_max_tokens: int = Field(default=400)
    summary_temperature: float = Field(default=0.3)

    # Meta analysis
    analysis_window_messages: int = Field(default=20)
    max_points_per_category: int = Field(default=5)
    analysis_max_tokens: int = Field(default=1000)
    analysis_temperature: float = Field(default=0.3)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def uses_turso(self) -> bool:
        return bool(self.turso_database_url.strip())
