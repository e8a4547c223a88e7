from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RunCommandType(str, Enum):
    RUN = "run"
    APPROVE = "approve"
    DECLINE = "decline"
    STOP = "stop"


@dataclass(frozen=True, slots=True)
class RunCommand:
    """A request to move a workflow run forward.

    Transports (CLI prompt, HTTP route, tests) translate user actions into
    commands; the runner is the only thing that acts on them.
    """

    type: RunCommandType
    workspace_path: str
    workflow_id: str
    values: dict[str, str] = field(default_factory=dict)
