#!/usr/bin/env python3
"""Programmatic workflow run example.

This demonstrates using the engine components directly:

* define a workflow with one placeholder and an approval-gated step
* store it under `<workspace>/.anvil/workflows/`
* run it against a real shell, approving steps on the console

The workspace is passed as an argument (not read from `.env`).
"""

from __future__ import annotations

import argparse
from typing import Sequence

from anvil_workflows.engine.logging import configure_logging
from anvil_workflows.engine.terminal.channel import PtyTerminalChannel
from anvil_workflows.engine.workflow import (
    ConsoleApprovalGate,
    RunStatus,
    Workflow,
    WorkflowRunner,
    WorkflowStep,
    WorkflowStore,
    drive_run,
)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a sample workflow (programmatic example).")
    parser.add_argument("--workspace", required=True, help="Workspace directory")
    parser.add_argument("--name", default="world", help="Value for the {{name}} placeholder")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    store = WorkflowStore()
    workflow = store.save(
        args.workspace,
        Workflow(
            id="hello",
            name="Hello",
            steps=[
                WorkflowStep(id="list", title="List files", command="ls", requires_approval=False),
                WorkflowStep(id="greet", title="Greet", command="echo hello {{name}}"),
            ],
        ),
    )

    channel = PtyTerminalChannel(on_output=lambda text: print(text, end="", flush=True))
    runner = WorkflowRunner(channel=channel, store=store)
    try:
        outcomes = drive_run(
            runner=runner,
            gate=ConsoleApprovalGate(),
            workspace_path=args.workspace,
            workflow=workflow,
            values={"name": args.name},
        )
    finally:
        channel.close(graceful=True)

    final = outcomes[-1]
    print(f"\n{workflow.name}: {final.status.value}")
    return 0 if final.status is RunStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
