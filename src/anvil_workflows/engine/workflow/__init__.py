"""Workflow definitions and their execution engine.

This package provides:
- Workflow models and the file-backed store
- Placeholder resolution and command building (pure functions)
- An explicit run state machine with pure transitions
- A runner that performs terminal dispatch and holds paused runs

Control flow is deterministic: steps run in definition order and only a human
decision moves a paused run forward.
"""

from anvil_workflows.engine.workflow.approval import (
    ApprovalDecision,
    ApprovalGate,
    ConsoleApprovalGate,
    drive_run,
)
from anvil_workflows.engine.workflow.commands import build_run_command
from anvil_workflows.engine.workflow.events import RunCommand, RunCommandType
from anvil_workflows.engine.workflow.models import (
    Workflow,
    WorkflowStep,
    WorkflowSummary,
    WorkflowValidationError,
)
from anvil_workflows.engine.workflow.runner import RunOutcome, RunStatus, WorkflowRunner
from anvil_workflows.engine.workflow.state_machine import (
    MissingParametersError,
    RunPhase,
    RunState,
)
from anvil_workflows.engine.workflow.store import (
    WorkflowNotFoundError,
    WorkflowStore,
    WorkflowStoreError,
)
from anvil_workflows.engine.workflow.templates import (
    extract_param_keys,
    get_missing_params,
    resolve_command,
)

__all__ = [
    "ApprovalDecision",
    "ApprovalGate",
    "ConsoleApprovalGate",
    "MissingParametersError",
    "RunCommand",
    "RunCommandType",
    "RunOutcome",
    "RunPhase",
    "RunState",
    "RunStatus",
    "Workflow",
    "WorkflowNotFoundError",
    "WorkflowRunner",
    "WorkflowStep",
    "WorkflowStore",
    "WorkflowStoreError",
    "WorkflowSummary",
    "WorkflowValidationError",
    "build_run_command",
    "drive_run",
    "extract_param_keys",
    "get_missing_params",
    "resolve_command",
]
