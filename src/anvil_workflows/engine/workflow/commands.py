"""Turn a workflow step into one literal shell command line."""

from __future__ import annotations

import re
from collections.abc import Mapping

from .models import WorkflowStep
from .templates import resolve_command

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:\\")


def is_absolute_dir(path: str) -> bool:
    return path.startswith("/") or bool(_DRIVE_LETTER.match(path))


def effective_working_dir(working_dir: str, workspace_path: str | None) -> str:
    raw = working_dir.strip()
    base = (workspace_path or "").rstrip("/")
    if is_absolute_dir(raw) or not base:
        return raw
    return f"{base}/{raw}"


def build_run_command(
    step: WorkflowStep, values: Mapping[str, str], workspace_path: str | None
) -> str:
    """Build the command that will be written to the terminal for `step`.

    Only double quotes in the directory are escaped. The shell does its own
    tokenisation, and every approval-gated command is shown to a human in this
    exact form before it runs.
    """

    resolved = resolve_command(step.command, values)
    if not step.working_dir or not step.working_dir.strip():
        return resolved

    directory = effective_working_dir(step.working_dir, workspace_path)
    escaped = directory.replace('"', '\\"')
    return f'cd "{escaped}" && {resolved}'
