"""Configuration for the automation engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Nothing is required: every setting has a local-first default, so the engine
can run against an empty state directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AutomationSettings(BaseSettings):
    """Settings for the workflow automation engine.

    Environment variables:
    - LOG_LEVEL                            (optional)
    - LOG_FORMAT                           (optional)
    - AUTOMATION_STATE_PATH                (optional)
    - AUTOMATION_BOARDS_FILE               (optional)
    - AUTOMATION_USERS_FILE                (optional)
    - AUTOMATION_ACTION_TIMEOUT_SECONDS    (optional)
    - AUTOMATION_EXECUTION_HISTORY_LIMIT   (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `AutomationSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        validation_alias="LOG_FORMAT",
        description="json: one JSON object per line; text: human-readable lines",
    )

    state_path: Path = Field(
        default=Path("automation_state"),
        validation_alias="AUTOMATION_STATE_PATH",
        description="Directory holding the workflow/execution/rule/field JSON snapshots",
    )

    boards_file: Path | None = Field(
        default=None,
        validation_alias="AUTOMATION_BOARDS_FILE",
        description="Board snapshot used by the local board repository "
        "(defaults to <state_path>/boards.json)",
    )
    users_file: Path | None = Field(
        default=None,
        validation_alias="AUTOMATION_USERS_FILE",
        description="User list used by the local user directory "
        "(defaults to <state_path>/users.json)",
    )

    action_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias="AUTOMATION_ACTION_TIMEOUT_SECONDS",
        description="Time budget for a single action; overrunning it fails the action",
    )
    execution_history_limit: int = Field(
        default=1000,
        ge=1,
        validation_alias="AUTOMATION_EXECUTION_HISTORY_LIMIT",
        description="Executions retained in history; the oldest are dropped first",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def boards_state_file(self) -> Path:
        return self.boards_file or self.state_path / "boards.json"

    @property
    def users_state_file(self) -> Path:
        return self.users_file or self.state_path / "users.json"
