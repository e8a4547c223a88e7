"""Unit tests for approval-gated workflow execution."""

from __future__ import annotations

from anvil_workflows.engine.workflow.events import RunCommand, RunCommandType
from anvil_workflows.engine.workflow.models import Workflow, WorkflowStep
from anvil_workflows.engine.workflow.runner import RunStatus, WorkflowRunner
from anvil_workflows.engine.workflow.store import WorkflowStore


def _workflow(*steps: WorkflowStep, workflow_id: str = "wf-1") -> Workflow:
    return Workflow(id=workflow_id, name="Deploy", steps=list(steps))


def _step(
    command: str, *, approval: bool | None = True, working_dir: str | None = None
) -> WorkflowStep:
    return WorkflowStep(
        id=command,
        title=command,
        command=command,
        requires_approval=approval,
        working_dir=working_dir,
    )


def test_missing_parameters_prompt_instead_of_running(runner, channel) -> None:
    workflow = _workflow(_step("echo {{branch}}"))

    outcome = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    assert outcome.status is RunStatus.NEEDS_PARAMETERS
    assert outcome.missing_params == ["branch"]
    assert WorkflowRunner.preview(workflow, {}, "/ws") == ["echo <branch>"]
    assert runner.get_run("/ws", "wf-1") is None
    assert channel.writes == []


def test_approval_step_pauses_then_dispatches_on_approve(runner, channel) -> None:
    workflow = _workflow(_step("echo {{branch}}"))

    paused = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={"branch": "main"})

    assert paused.status is RunStatus.AWAITING_APPROVAL
    assert paused.step_index == 0
    assert paused.pending_command == "echo main"
    assert channel.writes == []

    done = runner.approve(workspace_path="/ws", workflow_id="wf-1")

    assert done.status is RunStatus.COMPLETED
    assert channel.writes == ["echo main\n"]
    assert runner.get_run("/ws", "wf-1") is None


def test_auto_steps_run_without_pauses(runner, channel) -> None:
    workflow = _workflow(_step("npm install", approval=False))

    outcome = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.dispatched == ["npm install"]
    assert channel.writes == ["npm install\n"]
    assert channel.ready_calls == ["/ws"]


def test_decline_stops_remaining_steps(runner, channel) -> None:
    workflow = _workflow(_step("echo A"), _step("echo B"), _step("echo C", approval=False))

    runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})
    second = runner.approve(workspace_path="/ws", workflow_id="wf-1")
    assert second.status is RunStatus.AWAITING_APPROVAL
    assert second.pending_command == "echo B"

    declined = runner.decline(workspace_path="/ws", workflow_id="wf-1")

    assert declined.status is RunStatus.CANCELLED
    assert declined.step_index == 1
    assert channel.writes == ["echo A\n"]
    assert runner.get_run("/ws", "wf-1") is None


def test_working_dir_resolved_against_workspace(runner, channel) -> None:
    workflow = _workflow(_step("deploy", approval=False, working_dir="infra"))

    runner.run_workflow(workspace_path="/home/u/proj", workflow=workflow, values={})

    assert channel.writes == ['cd "/home/u/proj/infra" && deploy\n']


def test_approving_every_step_dispatches_in_order(runner, channel) -> None:
    workflow = _workflow(_step("one"), _step("two"), _step("three", approval=None))

    outcome = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})
    approvals = 0
    while outcome.is_paused:
        approvals += 1
        outcome = runner.approve(workspace_path="/ws", workflow_id="wf-1")

    assert approvals == 3
    assert outcome.status is RunStatus.COMPLETED
    assert channel.writes == ["one\n", "two\n", "three\n"]
    assert runner.list_runs() == []


def test_auto_steps_after_approved_step_continue_without_pause(runner, channel) -> None:
    workflow = _workflow(
        _step("build"), _step("test", approval=False), _step("lint", approval=False), _step("ship")
    )

    runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})
    outcome = runner.approve(workspace_path="/ws", workflow_id="wf-1")

    assert outcome.status is RunStatus.AWAITING_APPROVAL
    assert outcome.step_index == 3
    assert outcome.dispatched == ["build", "test", "lint"]


def test_same_workflow_cannot_start_twice(runner, channel) -> None:
    workflow = _workflow(_step("echo A"))
    runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    again = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    assert again.status is RunStatus.BUSY
    state = runner.get_run("/ws", "wf-1")
    assert state is not None and state.step_index == 0


def test_different_workflows_may_run_concurrently(runner) -> None:
    first = runner.run_workflow(
        workspace_path="/ws", workflow=_workflow(_step("a"), workflow_id="one"), values={}
    )
    second = runner.run_workflow(
        workspace_path="/ws", workflow=_workflow(_step("b"), workflow_id="two"), values={}
    )

    assert first.is_paused and second.is_paused
    assert [r.workflow_id for r in runner.list_runs("/ws")] == ["one", "two"]


def test_channel_failure_aborts_run(runner, channel) -> None:
    channel.fail = True
    workflow = _workflow(_step("echo A"), _step("echo B"))
    runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    outcome = runner.approve(workspace_path="/ws", workflow_id="wf-1")

    assert outcome.status is RunStatus.FAILED
    assert "spawn failed" in outcome.message
    assert channel.writes == []
    assert runner.get_run("/ws", "wf-1") is None


def test_stop_discards_paused_run(runner, channel) -> None:
    runner.run_workflow(workspace_path="/ws", workflow=_workflow(_step("x")), values={})

    stopped = runner.stop(workspace_path="/ws", workflow_id="wf-1")

    assert stopped.status is RunStatus.STOPPED
    assert runner.get_run("/ws", "wf-1") is None
    again = runner.approve(workspace_path="/ws", workflow_id="wf-1")
    assert again.status is RunStatus.NO_ACTIVE_RUN
    assert channel.writes == []


def test_decisions_without_run_are_reported(runner) -> None:
    for decide in (runner.approve, runner.decline, runner.stop):
        outcome = decide(workspace_path="/ws", workflow_id="nope")
        assert outcome.status is RunStatus.NO_ACTIVE_RUN


def test_handle_runs_stored_workflow(
    runner, channel, store: WorkflowStore, workspace: str
) -> None:
    store.save(workspace, _workflow(_step("echo {{who}}")))

    first = runner.handle(
        RunCommand(
            type=RunCommandType.RUN,
            workspace_path=workspace,
            workflow_id="wf-1",
            values={"who": "me"},
        )
    )
    assert first.pending_command == "echo me"

    done = runner.handle(
        RunCommand(type=RunCommandType.APPROVE, workspace_path=workspace, workflow_id="wf-1")
    )
    assert done.status is RunStatus.COMPLETED
    assert channel.writes == ["echo me\n"]


def test_handle_unknown_workflow_is_not_found(runner, workspace: str) -> None:
    outcome = runner.handle(
        RunCommand(type=RunCommandType.RUN, workspace_path=workspace, workflow_id="missing")
    )

    assert outcome.status is RunStatus.NOT_FOUND


def test_handle_invalid_workflow_id_is_reported(runner, workspace: str) -> None:
    outcome = runner.handle(
        RunCommand(type=RunCommandType.RUN, workspace_path=workspace, workflow_id="a..b")
    )

    assert outcome.status is RunStatus.INVALID
    assert "a..b" in outcome.message


def test_write_failure_on_approve_discards_run(runner, channel) -> None:
    workflow = _workflow(_step("echo A"), _step("echo B"))
    runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})
    channel.fail_writes = True

    outcome = runner.approve(workspace_path="/ws", workflow_id="wf-1")

    assert outcome.status is RunStatus.FAILED
    assert outcome.step_index == 0
    assert runner.get_run("/ws", "wf-1") is None


def test_write_failure_on_auto_step_discards_run(runner, channel) -> None:
    channel.fail_writes = True
    workflow = _workflow(_step("npm ci", approval=False), _step("npm test"))

    outcome = runner.run_workflow(workspace_path="/ws", workflow=workflow, values={})

    assert outcome.status is RunStatus.FAILED
    assert outcome.dispatched == []
    assert runner.get_run("/ws", "wf-1") is None
    assert runner.run_workflow(workspace_path="/ws", workflow=workflow, values={}).status is (
        RunStatus.FAILED
    )


def test_run_locks_are_released_with_their_runs(runner) -> None:
    runner.run_workflow(workspace_path="/ws", workflow=_workflow(_step("a")), values={})
    runner.run_workflow(
        workspace_path="/ws",
        workflow=_workflow(_step("b", approval=False), workflow_id="auto"),
        values={},
    )

    assert list(runner._run_locks) == [("/ws", "wf-1")]

    runner.approve(workspace_path="/ws", workflow_id="wf-1")
    runner.stop(workspace_path="/ws", workflow_id="gone")

    assert runner._run_locks == {}
