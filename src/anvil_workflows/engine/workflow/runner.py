"""Drive workflow runs against a terminal channel.

The runner owns the in-flight RunStates, performs the dispatch effects produced
by the pure transition functions in `state_machine`, and converts every engine
error into a `RunOutcome` at its public boundary.

Runs are keyed by (workspace, workflow id). Each key has its own lock so that
HTTP clients racing on the same run are serialised; runs of different workflows
proceed independently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from anvil_workflows.engine.terminal.channel import ChannelUnavailableError, TerminalChannel

from .commands import build_run_command
from .events import RunCommand, RunCommandType
from .models import Workflow, WorkflowValidationError
from .state_machine import (
    Dispatch,
    IllegalTransitionError,
    MissingParametersError,
    RunPhase,
    RunState,
    advance,
    approve_step,
    decline_step,
    start_run,
)
from .store import WorkflowNotFoundError, WorkflowStore, WorkflowStoreError

logger = logging.getLogger(__name__)

RunKey = tuple[str, str]


class RunStatus(str, Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STOPPED = "stopped"
    NEEDS_PARAMETERS = "needs_parameters"
    BUSY = "busy"
    NO_ACTIVE_RUN = "no_active_run"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RunAlreadyActiveError(Exception):
    workflow_id: str

    def __str__(self) -> str:
        return f"Workflow {self.workflow_id} already has a run in progress"


@dataclass(frozen=True, slots=True)
class NoActiveRunError(Exception):
    workflow_id: str

    def __str__(self) -> str:
        return f"Workflow {self.workflow_id} has no run awaiting a decision"


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """What happened during one call into the runner.

    `dispatched` lists only the commands written during this call.
    """

    status: RunStatus
    workflow_id: str
    step_index: int | None = None
    step_count: int | None = None
    step_title: str | None = None
    pending_command: str | None = None
    missing_params: list[str] = field(default_factory=list)
    dispatched: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def is_paused(self) -> bool:
        return self.status is RunStatus.AWAITING_APPROVAL

    def to_json(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "workflow_id": self.workflow_id,
            "step_index": self.step_index,
            "step_count": self.step_count,
            "step_title": self.step_title,
            "pending_command": self.pending_command,
            "missing_params": list(self.missing_params),
            "dispatched": list(self.dispatched),
            "message": self.message,
        }


@dataclass(slots=True)
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class WorkflowRunner:
    def __init__(self, *, channel: TerminalChannel, store: WorkflowStore | None = None) -> None:
        self._channel = channel
        self._store = store
        self._runs: dict[RunKey, RunState] = {}
        self._registry_lock = threading.Lock()
        self._run_locks: dict[RunKey, _KeyLock] = {}

    @contextmanager
    def _locked(self, key: RunKey) -> Iterator[None]:
        """Hold the lock for `key`; the entry is dropped once unused and runless."""

        with self._registry_lock:
            entry = self._run_locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._run_locks[key] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0 and key not in self._runs:
                    del self._run_locks[key]

    # Inspection ---------------------------------------------------------

    def get_run(self, workspace_path: str, workflow_id: str) -> RunState | None:
        with self._registry_lock:
            return self._runs.get((workspace_path, workflow_id))

    def list_runs(self, workspace_path: str | None = None) -> list[RunState]:
        with self._registry_lock:
            runs = list(self._runs.values())
        if workspace_path is not None:
            runs = [r for r in runs if r.workspace_path == workspace_path]
        return sorted(runs, key=lambda r: r.workflow_id)

    @staticmethod
    def preview(
        workflow: Workflow, values: Mapping[str, str], workspace_path: str | None
    ) -> list[str]:
        return [build_run_command(step, values, workspace_path) for step in workflow.steps]

    # Entry points -------------------------------------------------------

    def handle(self, command: RunCommand) -> RunOutcome:
        ws, workflow_id = command.workspace_path, command.workflow_id
        if command.type is RunCommandType.RUN:
            return self.run_by_id(
                workspace_path=ws, workflow_id=workflow_id, values=command.values
            )
        if command.type is RunCommandType.APPROVE:
            return self.approve(workspace_path=ws, workflow_id=workflow_id)
        if command.type is RunCommandType.DECLINE:
            return self.decline(workspace_path=ws, workflow_id=workflow_id)
        return self.stop(workspace_path=ws, workflow_id=workflow_id)

    def run_by_id(
        self, *, workspace_path: str, workflow_id: str, values: Mapping[str, str]
    ) -> RunOutcome:
        if self._store is None:
            return RunOutcome(
                status=RunStatus.FAILED,
                workflow_id=workflow_id,
                message="No workflow store configured",
            )
        try:
            workflow = self._store.load(workspace_path, workflow_id)
        except WorkflowNotFoundError as e:
            return RunOutcome(status=RunStatus.NOT_FOUND, workflow_id=workflow_id, message=str(e))
        except WorkflowValidationError as e:
            return RunOutcome(status=RunStatus.INVALID, workflow_id=workflow_id, message=str(e))
        except WorkflowStoreError as e:
            return RunOutcome(status=RunStatus.FAILED, workflow_id=workflow_id, message=str(e))
        return self.run_workflow(workspace_path=workspace_path, workflow=workflow, values=values)

    def run_workflow(
        self, *, workspace_path: str, workflow: Workflow, values: Mapping[str, str]
    ) -> RunOutcome:
        key = (workspace_path, workflow.id)
        with self._locked(key):
            try:
                if self.get_run(workspace_path, workflow.id) is not None:
                    raise RunAlreadyActiveError(workflow_id=workflow.id)
                state = start_run(workflow=workflow, values=values, workspace_path=workspace_path)
            except MissingParametersError as e:
                logger.info(
                    "Workflow parameters required",
                    extra={"workflow_id": workflow.id, "missing": e.missing},
                )
                return RunOutcome(
                    status=RunStatus.NEEDS_PARAMETERS,
                    workflow_id=workflow.id,
                    step_count=len(workflow.steps),
                    missing_params=list(e.missing),
                    message=str(e),
                )
            except RunAlreadyActiveError as e:
                return RunOutcome(status=RunStatus.BUSY, workflow_id=workflow.id, message=str(e))

            logger.info(
                "Workflow run started",
                extra={
                    "workflow_id": workflow.id,
                    "workspace_path": workspace_path,
                    "steps": len(state.steps),
                },
            )
            self._store_state(key, state)
            return self._advance(key, state, dispatched=[])

    def approve(self, *, workspace_path: str, workflow_id: str) -> RunOutcome:
        key = (workspace_path, workflow_id)
        with self._locked(key):
            try:
                state = self._require_paused(key)
                next_state, effect = approve_step(state)
            except (NoActiveRunError, IllegalTransitionError) as e:
                return RunOutcome(
                    status=RunStatus.NO_ACTIVE_RUN, workflow_id=workflow_id, message=str(e)
                )

            logger.info(
                "Workflow step approved",
                extra={"workflow_id": workflow_id, "step_index": state.step_index},
            )
            dispatched: list[str] = []
            failure = self._dispatch(key, state, effect, dispatched)
            if failure is not None:
                return failure
            self._store_state(key, next_state)
            return self._advance(key, next_state, dispatched=dispatched)

    def decline(self, *, workspace_path: str, workflow_id: str) -> RunOutcome:
        key = (workspace_path, workflow_id)
        with self._locked(key):
            try:
                state = self._require_paused(key)
                cancelled = decline_step(state)
            except (NoActiveRunError, IllegalTransitionError) as e:
                return RunOutcome(
                    status=RunStatus.NO_ACTIVE_RUN, workflow_id=workflow_id, message=str(e)
                )

            self._discard(key)
            logger.info(
                "Workflow run cancelled",
                extra={"workflow_id": workflow_id, "step_index": cancelled.step_index},
            )
            return RunOutcome(
                status=RunStatus.CANCELLED,
                workflow_id=workflow_id,
                step_index=cancelled.step_index,
                step_count=len(cancelled.steps),
                message="Run cancelled",
            )

    def stop(self, *, workspace_path: str, workflow_id: str) -> RunOutcome:
        key = (workspace_path, workflow_id)
        with self._locked(key):
            state = self.get_run(workspace_path, workflow_id)
            if state is None:
                return RunOutcome(
                    status=RunStatus.NO_ACTIVE_RUN,
                    workflow_id=workflow_id,
                    message=str(NoActiveRunError(workflow_id=workflow_id)),
                )
            self._discard(key)
            logger.info(
                "Workflow run stopped",
                extra={"workflow_id": workflow_id, "step_index": state.step_index},
            )
            return RunOutcome(
                status=RunStatus.STOPPED,
                workflow_id=workflow_id,
                step_index=state.step_index,
                step_count=len(state.steps),
                message="Run stopped",
            )

    # Internals ----------------------------------------------------------

    def _store_state(self, key: RunKey, state: RunState) -> None:
        with self._registry_lock:
            self._runs[key] = state

    def _discard(self, key: RunKey) -> None:
        with self._registry_lock:
            self._runs.pop(key, None)

    def _require_paused(self, key: RunKey) -> RunState:
        with self._registry_lock:
            state = self._runs.get(key)
        if state is None or state.phase is not RunPhase.AWAITING_APPROVAL:
            raise NoActiveRunError(workflow_id=key[1])
        return state

    def _dispatch(
        self, key: RunKey, state: RunState, effect: Dispatch, dispatched: list[str]
    ) -> RunOutcome | None:
        """Write one command to the terminal; on channel failure abort the run."""

        try:
            self._channel.ensure_ready(state.workspace_path)
            self._channel.write(f"{effect.command}\n")
        except ChannelUnavailableError as e:
            self._discard(key)
            logger.error(
                "Workflow run aborted: terminal unavailable",
                extra={"workflow_id": state.workflow_id, "step_index": effect.step_index},
            )
            return RunOutcome(
                status=RunStatus.FAILED,
                workflow_id=state.workflow_id,
                step_index=effect.step_index,
                step_count=len(state.steps),
                dispatched=dispatched,
                message=str(e),
            )

        dispatched.append(effect.command)
        logger.info(
            "Workflow step dispatched",
            extra={"workflow_id": state.workflow_id, "step_index": effect.step_index},
        )
        return None

    def _advance(self, key: RunKey, state: RunState, *, dispatched: list[str]) -> RunOutcome:
        while state.phase is RunPhase.RUNNING:
            next_state, effect = advance(state)
            if effect is not None:
                failure = self._dispatch(key, state, effect, dispatched)
                if failure is not None:
                    return failure
            state = next_state
            self._store_state(key, state)

        if state.phase is RunPhase.AWAITING_APPROVAL:
            step = state.current_step
            logger.info(
                "Workflow step awaiting approval",
                extra={"workflow_id": state.workflow_id, "step_index": state.step_index},
            )
            return RunOutcome(
                status=RunStatus.AWAITING_APPROVAL,
                workflow_id=state.workflow_id,
                step_index=state.step_index,
                step_count=len(state.steps),
                step_title=step.title if step is not None else None,
                pending_command=state.pending_command,
                dispatched=dispatched,
            )

        self._discard(key)
        logger.info(
            "Workflow run completed",
            extra={"workflow_id": state.workflow_id, "dispatched": len(dispatched)},
        )
        return RunOutcome(
            status=RunStatus.COMPLETED,
            workflow_id=state.workflow_id,
            step_index=state.step_index,
            step_count=len(state.steps),
            dispatched=dispatched,
            message="Run completed",
        )
