"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """askpane configuration. All values come from environment variables."""

    # Gemini
    gemini_api_key: str = Field(default="")
    gemini_api_base: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    gemini_model: str = Field(default="gemini-2.0-flash-exp")
    embedding_model: str = Field(default="text-embedding-004")
    temperature: float = Field(default=0.7)
    max_output_tokens: int = Field(default=2048)
    request_timeout_seconds: float = Field(default=60.0)

    # Prompting
    page_context_chars: int = Field(default=8000)

    # Memory retrieval
    memory_top_k: int = Field(default=3)
    memory_min_score: float = Field(default=0.6)

    # Database
    database_path: Path = Field(default=Path("data/askpane.db"))

    # HTTP API
    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=8765)
    api_shared_secret: str = Field(default="")

    # Overlay display defaults (served to the overlay, unused by the core)
    bg_color: str = Field(default="#282a36")
    text_color: str = Field(default="#f8f8f2")
    transparency: float = Field(default=0.95)
    window_width: int = Field(default=300)
    window_height: int = Field(default=200)

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
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key.strip())

    def display_settings(self) -> dict[str, str | float | int]:
        """Overlay appearance defaults, keyed the way the overlay expects."""
        return {
            "bgColor": self.bg_color,
            "textColor": self.text_color,
            "transparency": self.transparency,
            "windowWidth": self.window_width,
            "windowHeight": self.window_height,
        }


settings = Settings()
