"""CLI entrypoint for managing and running workspace workflows."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from anvil_workflows import __version__
from anvil_workflows.engine.config import EngineSettings
from anvil_workflows.engine.logging import configure_logging
from anvil_workflows.engine.terminal.channel import PtyTerminalChannel
from anvil_workflows.engine.workflow.approval import ConsoleApprovalGate, drive_run
from anvil_workflows.engine.workflow.models import Workflow, WorkflowValidationError
from anvil_workflows.engine.workflow.runner import RunStatus, WorkflowRunner
from anvil_workflows.engine.workflow.store import (
    WorkflowNotFoundError,
    WorkflowStore,
    WorkflowStoreError,
)
from anvil_workflows.engine.workflow.templates import extract_param_keys, get_missing_params

logger = logging.getLogger(__name__)


def _parse_params(pairs: list[str] | None) -> dict[str, str]:
    values: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid --param {pair!r}; expected key=value")
        values[key.strip()] = value
    return values


def _prompt_for_missing(
    workflow: Workflow, values: dict[str, str], *, stdin: TextIO, stdout: TextIO
) -> dict[str, str]:
    missing = get_missing_params(extract_param_keys(workflow.steps), values)
    filled = dict(values)
    for key in missing:
        stdout.write(f"{key}: ")
        stdout.flush()
        filled[key] = stdin.readline().rstrip("\n")
    return filled


def _echo_to(stream: TextIO) -> Callable[[str], None]:
    def _echo(text: str) -> None:
        stream.write(text)
        stream.flush()

    return _echo


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anvil-workflows",
        description="Define and run parameterised shell workflows with step approval",
    )
    parser.add_argument("--version", action="version", version=f"anvil-workflows {__version__}")
    parser.add_argument(
        "--workspace",
        default=None,
        help="Workspace directory (defaults to ANVIL_WORKSPACE or the current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List workflows in the workspace")

    show = subparsers.add_parser("show", help="Print a workflow definition as JSON")
    show.add_argument("workflow_id")

    save = subparsers.add_parser("save", help="Validate and store a workflow JSON file")
    save.add_argument("file", help="Path to a workflow definition (JSON)")

    delete = subparsers.add_parser("delete", help="Delete a workflow")
    delete.add_argument("workflow_id")

    for name, help_text in (
        ("preview", "Print the commands a run would dispatch"),
        ("run", "Run a workflow, asking before each approval-gated step"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("workflow_id")
        sub.add_argument(
            "--param",
            action="append",
            default=None,
            metavar="KEY=VALUE",
            help="Placeholder value; may be repeated",
        )

    return parser


def main(
    argv: list[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    runner: WorkflowRunner | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout

    try:
        settings = EngineSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    workspace = (
        str(Path(args.workspace).expanduser().resolve())
        if args.workspace
        else settings.resolved_workspace
    )
    store = WorkflowStore(settings.workflows_dirname)

    try:
        if args.command == "list":
            summaries = store.list(workspace)
            if not summaries:
                print("No workflows found.", file=stdout)
            for summary in summaries:
                print(
                    f"{summary.id}\t{summary.name}\t{summary.step_count} steps",
                    file=stdout,
                )
            return 0

        if args.command == "show":
            workflow = store.load(workspace, args.workflow_id)
            print(workflow.model_dump_json(indent=2), file=stdout)
            return 0

        if args.command == "save":
            raw = Path(args.file).read_text(encoding="utf-8")
            saved = store.save(workspace, Workflow.model_validate_json(raw))
            print(f"Saved workflow {saved.id} ({saved.name})", file=stdout)
            return 0

        if args.command == "delete":
            store.delete(workspace, args.workflow_id)
            print(f"Deleted workflow {args.workflow_id}", file=stdout)
            return 0

        if args.command == "preview":
            workflow = store.load(workspace, args.workflow_id)
            values = _parse_params(args.param)
            commands = WorkflowRunner.preview(workflow, values, workspace)
            for index, (step, command) in enumerate(zip(workflow.steps, commands, strict=True)):
                gate = "approval" if step.needs_approval else "auto"
                print(f"{index + 1}. [{gate}] {step.title or step.id}", file=stdout)
                print(f"   $ {command}", file=stdout)
            return 0

        if args.command == "run":
            workflow = store.load(workspace, args.workflow_id)
            values = _prompt_for_missing(
                workflow, _parse_params(args.param), stdin=stdin, stdout=stdout
            )

            channel: PtyTerminalChannel | None = None
            if runner is None:
                channel = PtyTerminalChannel(
                    shell=settings.shell,
                    cols=settings.terminal_cols,
                    rows=settings.terminal_rows,
                    on_output=_echo_to(stdout),
                )
                runner = WorkflowRunner(channel=channel, store=store)
            try:
                outcomes = drive_run(
                    runner=runner,
                    gate=ConsoleApprovalGate(stdin=stdin, stdout=stdout),
                    workspace_path=workspace,
                    workflow=workflow,
                    values=values,
                )
            finally:
                if channel is not None:
                    channel.close(graceful=True)

            final = outcomes[-1]
            if final.status is RunStatus.COMPLETED:
                print(f"\nWorkflow {workflow.id} completed.", file=stdout)
                return 0
            if final.status is RunStatus.CANCELLED:
                print(f"\nWorkflow {workflow.id} cancelled.", file=stdout)
                return 3
            if final.status is RunStatus.NEEDS_PARAMETERS:
                print(
                    f"Missing parameters: {', '.join(final.missing_params)}",
                    file=sys.stderr,
                )
                return 2
            print(final.message or final.status.value, file=sys.stderr)
            return 1

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (WorkflowNotFoundError, WorkflowValidationError, ValueError) as e:
        logger.warning(str(e), extra={"command": args.command})
        print(str(e), file=sys.stderr)
        return 1

    except (WorkflowStoreError, OSError):
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
