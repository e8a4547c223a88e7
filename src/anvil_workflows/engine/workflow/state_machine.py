from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum

from .commands import build_run_command
from .models import Workflow, WorkflowStep
from .templates import extract_param_keys, get_missing_params


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[RunPhase, set[RunPhase]] = {
    RunPhase.IDLE: {RunPhase.RUNNING},
    RunPhase.RUNNING: {RunPhase.RUNNING, RunPhase.AWAITING_APPROVAL, RunPhase.COMPLETED},
    RunPhase.AWAITING_APPROVAL: {RunPhase.RUNNING, RunPhase.CANCELLED},
    RunPhase.COMPLETED: {RunPhase.IDLE},
    RunPhase.CANCELLED: {RunPhase.IDLE},
}

TERMINAL_PHASES: frozenset[RunPhase] = frozenset({RunPhase.COMPLETED, RunPhase.CANCELLED})


class IllegalTransitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class MissingParametersError(Exception):
    """Raised at run start when placeholder values are absent or blank."""

    missing: list[str]

    def __str__(self) -> str:
        return f"Missing workflow parameters: {', '.join(self.missing)}"


@dataclass(frozen=True, slots=True)
class RunState:
    """A resumable cursor over one workflow execution.

    `steps` and `resolved_commands` are snapshots taken at run start, so later
    edits to the stored definition never leak into an in-flight run.
    """

    workflow_id: str
    workspace_path: str
    phase: RunPhase
    step_index: int
    steps: tuple[WorkflowStep, ...]
    resolved_commands: tuple[str, ...]

    @property
    def current_step(self) -> WorkflowStep | None:
        if self.step_index < len(self.steps):
            return self.steps[self.step_index]
        return None

    @property
    def pending_command(self) -> str | None:
        if self.phase is RunPhase.AWAITING_APPROVAL:
            return self.resolved_commands[self.step_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def to_json(self) -> dict[str, object]:
        step = self.current_step
        return {
            "workflow_id": self.workflow_id,
            "workspace_path": self.workspace_path,
            "phase": self.phase.value,
            "step_index": self.step_index,
            "step_count": len(self.steps),
            "step_title": step.title if step is not None else None,
            "pending_command": self.pending_command,
            "resolved_commands": list(self.resolved_commands),
        }


@dataclass(frozen=True, slots=True)
class Dispatch:
    """Effect: write `command` (the resolved command of `step_index`) to the terminal."""

    step_index: int
    command: str


def _dispatch_current(state: RunState) -> Dispatch:
    return Dispatch(step_index=state.step_index, command=state.resolved_commands[state.step_index])


def transition(*, current: RunState, to: RunPhase, step_index: int | None = None) -> RunState:
    allowed = ALLOWED_TRANSITIONS.get(current.phase, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.phase.value} -> {to.value}")
    index = current.step_index if step_index is None else step_index
    if not 0 <= index <= len(current.steps):
        raise IllegalTransitionError(f"Step index out of range: {index}")
    return replace(current, phase=to, step_index=index)


def start_run(
    *, workflow: Workflow, values: Mapping[str, str], workspace_path: str
) -> RunState:
    """Create a RunState at step 0, ready to `advance`.

    Raises:
        MissingParametersError: if any placeholder has no usable value.
    """

    keys = extract_param_keys(workflow.steps)
    missing = get_missing_params(keys, values)
    if missing:
        raise MissingParametersError(missing=missing)

    steps = tuple(step.model_copy(deep=True) for step in workflow.steps)
    commands = tuple(build_run_command(step, values, workspace_path) for step in steps)
    idle = RunState(
        workflow_id=workflow.id,
        workspace_path=workspace_path,
        phase=RunPhase.IDLE,
        step_index=0,
        steps=steps,
        resolved_commands=commands,
    )
    return transition(current=idle, to=RunPhase.RUNNING)


def advance(state: RunState) -> tuple[RunState, Dispatch | None]:
    """Take one step forward from a RUNNING state.

    Returns the next state and the dispatch the caller must perform, if any.
    Callers loop until the returned state is no longer RUNNING.
    """

    if state.phase is not RunPhase.RUNNING:
        raise IllegalTransitionError(f"Cannot advance from {state.phase.value}")

    step = state.current_step
    if step is None:
        return transition(current=state, to=RunPhase.COMPLETED), None
    if step.needs_approval:
        return transition(current=state, to=RunPhase.AWAITING_APPROVAL), None

    effect = _dispatch_current(state)
    return transition(current=state, to=RunPhase.RUNNING, step_index=state.step_index + 1), effect


def approve_step(state: RunState) -> tuple[RunState, Dispatch]:
    if state.phase is not RunPhase.AWAITING_APPROVAL:
        raise IllegalTransitionError(f"Nothing to approve in {state.phase.value}")
    effect = _dispatch_current(state)
    return transition(current=state, to=RunPhase.RUNNING, step_index=state.step_index + 1), effect


def decline_step(state: RunState) -> RunState:
    return transition(current=state, to=RunPhase.CANCELLED)
