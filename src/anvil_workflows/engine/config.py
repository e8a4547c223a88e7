"""Configuration for the workflow engine CLI.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def relative_workflows_dir(value: str) -> str:
    """Validate `ANVIL_WORKFLOWS_DIR`; the store joins it onto each workspace."""
    if not value.strip() or Path(value).is_absolute():
        raise ValueError("ANVIL_WORKFLOWS_DIR must be a workspace-relative path")
    return value.strip()


class EngineSettings(BaseSettings):
    """Settings for running workflows from the command line.

    Environment variables:
    - LOG_LEVEL            (optional)
    - ANVIL_WORKSPACE      (optional, defaults to the current directory)
    - ANVIL_WORKFLOWS_DIR  (optional)
    - ANVIL_SHELL          (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `EngineSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    workspace_path: Path = Field(
        default=Path("."),
        validation_alias="ANVIL_WORKSPACE",
        description="Workspace whose workflows are listed and run",
    )

    workflows_dirname: str = Field(
        default=".anvil/workflows",
        validation_alias="ANVIL_WORKFLOWS_DIR",
        description="Workspace-relative directory holding workflow JSON files",
    )

    shell: str = Field(
        default="bash",
        validation_alias="ANVIL_SHELL",
        description="Shell started for the workspace terminal",
    )
    terminal_cols: int = Field(default=80, gt=0, validation_alias="ANVIL_TERMINAL_COLS")
    terminal_rows: int = Field(default=24, gt=0, validation_alias="ANVIL_TERMINAL_ROWS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("workflows_dirname")
    @classmethod
    def _relative_workflows_dir(cls, value: str) -> str:
        return relative_workflows_dir(value)

    @property
    def resolved_workspace(self) -> str:
        """Absolute workspace path as a string, the form every engine entry point takes."""

        return str(self.workspace_path.expanduser().resolve())
