"""Configuration for the REST server.

The server can start without a workspace: every request names the workspace it
acts on, falling back to `ANVIL_WORKSPACE` when omitted.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from anvil_workflows.engine.config import relative_workflows_dir


class ServerSettings(BaseSettings):
    """Settings for the workflow REST API."""

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    default_workspace: Path | None = Field(
        default=None,
        validation_alias="ANVIL_WORKSPACE",
        description="Workspace used when a request does not pass `workspace`.",
    )
    workflows_dirname: str = Field(
        default=".anvil/workflows", validation_alias="ANVIL_WORKFLOWS_DIR"
    )

    shell: str = Field(default="bash", validation_alias="ANVIL_SHELL")
    terminal_cols: int = Field(default=80, gt=0, validation_alias="ANVIL_TERMINAL_COLS")
    terminal_rows: int = Field(default=24, gt=0, validation_alias="ANVIL_TERMINAL_ROWS")

    # Dev-friendly CORS. Override via ANVIL_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="ANVIL_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    @field_validator("workflows_dirname")
    @classmethod
    def _relative_workflows_dir(cls, value: str) -> str:
        return relative_workflows_dir(value)

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
