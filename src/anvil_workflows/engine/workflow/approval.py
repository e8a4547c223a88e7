from __future__ import annotations

import sys
from collections.abc import Mapping
from enum import Enum
from typing import Protocol, TextIO

from .models import Workflow
from .runner import RunOutcome, WorkflowRunner


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    DECLINE = "decline"


class ApprovalGate(Protocol):
    """Human-in-the-loop checkpoint.

    Only ever called with the literal command that will be written to the
    terminal, never with an unresolved template.
    """

    def request(
        self, *, workflow_id: str, step_index: int, step_title: str | None, command: str
    ) -> ApprovalDecision: ...


class ConsoleApprovalGate:
    """Ask on a text stream. Anything other than y/yes declines."""

    def __init__(self, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout

    def request(
        self, *, workflow_id: str, step_index: int, step_title: str | None, command: str
    ) -> ApprovalDecision:
        label = step_title or f"Step {step_index + 1}"
        self._stdout.write(f"\n[{workflow_id}] {label}\n  $ {command}\nRun this command? [y/N] ")
        self._stdout.flush()
        answer = self._stdin.readline().strip().lower()
        if answer in {"y", "yes"}:
            return ApprovalDecision.APPROVE
        return ApprovalDecision.DECLINE


def drive_run(
    *,
    runner: WorkflowRunner,
    gate: ApprovalGate,
    workspace_path: str,
    workflow: Workflow,
    values: Mapping[str, str],
) -> list[RunOutcome]:
    """Run `workflow` to a final outcome, consulting `gate` at every pause.

    Returns every outcome in order; the last one is final.
    """

    outcome = runner.run_workflow(workspace_path=workspace_path, workflow=workflow, values=values)
    outcomes = [outcome]
    while outcome.is_paused:
        if outcome.step_index is None or outcome.pending_command is None:
            raise RuntimeError(f"Paused run {outcome.workflow_id} has no pending command")
        decision = gate.request(
            workflow_id=outcome.workflow_id,
            step_index=outcome.step_index,
            step_title=outcome.step_title,
            command=outcome.pending_command,
        )
        if decision is ApprovalDecision.APPROVE:
            outcome = runner.approve(workspace_path=workspace_path, workflow_id=workflow.id)
        else:
            outcome = runner.decline(workspace_path=workspace_path, workflow_id=workflow.id)
        outcomes.append(outcome)
    return outcomes
