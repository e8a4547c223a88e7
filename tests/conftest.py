"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from anvil_workflows.engine.terminal.channel import ChannelUnavailableError
from anvil_workflows.engine.workflow.runner import WorkflowRunner
from anvil_workflows.engine.workflow.store import WorkflowStore


class RecordingChannel:
    """In-memory terminal channel that records what the engine asks of it."""

    def __init__(self, *, fail: bool = False, fail_writes: bool = False) -> None:
        self.fail = fail
        self.fail_writes = fail_writes
        self.ready_calls: list[str] = []
        self.spawned: list[str] = []
        self.writes: list[str] = []
        self.sizes: list[tuple[int, int]] = []
        self._workspace: str | None = None

    def ensure_ready(self, workspace_path: str) -> None:
        self.ready_calls.append(workspace_path)
        if self.fail:
            raise ChannelUnavailableError(workspace_path=workspace_path, reason="spawn failed")
        if self._workspace != workspace_path:
            self.spawned.append(workspace_path)
            self._workspace = workspace_path

    def write(self, text: str) -> None:
        if self.fail_writes:
            raise ChannelUnavailableError(
                workspace_path=self._workspace or "", reason="Input/output error"
            )
        self.writes.append(text)

    def resize(self, cols: int, rows: int) -> None:
        self.sizes.append((cols, rows))


@pytest.fixture
def workspace(tmp_path: Path) -> str:
    """Provide a temporary workspace directory."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return str(ws)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def store() -> WorkflowStore:
    return WorkflowStore()


@pytest.fixture
def runner(channel: RecordingChannel, store: WorkflowStore) -> WorkflowRunner:
    return WorkflowRunner(channel=channel, store=store)
