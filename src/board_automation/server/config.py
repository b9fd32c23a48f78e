"""Configuration for the REST server."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from board_automation.engine.config import AutomationSettings


class ServerSettings(AutomationSettings):
    """Engine settings plus what only the HTTP surface needs.

    Environment variables (in addition to :class:`AutomationSettings`):
    - AUTOMATION_CORS_ORIGINS   (optional)
    - AUTOMATION_HOST           (optional)
    - AUTOMATION_PORT           (optional)
    """

    # Dev-friendly CORS (Vite). Override via AUTOMATION_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="AUTOMATION_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    host: str = Field(default="127.0.0.1", validation_alias="AUTOMATION_HOST")
    port: int = Field(default=8000, ge=1, le=65535, validation_alias="AUTOMATION_PORT")

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
