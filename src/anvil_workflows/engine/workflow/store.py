"""File-backed workflow store.

Each workflow is one pretty-printed JSON file under
`<workspace>/.anvil/workflows/<id>.json`.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .models import (
    Workflow,
    WorkflowStep,
    WorkflowSummary,
    WorkflowValidationError,
    validate_workflow,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKFLOWS_DIRNAME = ".anvil/workflows"


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass(frozen=True, slots=True)
class WorkflowNotFoundError(Exception):
    workflow_id: str

    def __str__(self) -> str:
        return f"Workflow not found: {self.workflow_id}"


class WorkflowStoreError(RuntimeError):
    """Raised when a stored workflow file cannot be read or parsed."""


def new_workflow_id() -> str:
    return str(uuid.uuid4())


def new_workflow(name: str = "") -> Workflow:
    """Return an unsaved draft with a single approval-gated step."""

    return Workflow(
        id=new_workflow_id(),
        name=name,
        steps=[WorkflowStep(id="step-1", title="Step 1", command="", requires_approval=True)],
    )


def touch(workflow: Workflow) -> Workflow:
    now = _utc_iso_now()
    return workflow.model_copy(
        update={
            "created_at": workflow.created_at if workflow.created_at.strip() else now,
            "updated_at": now,
            "version": workflow.version or 1,
        }
    )


class WorkflowStore:
    def __init__(self, dirname: str | Path = DEFAULT_WORKFLOWS_DIRNAME) -> None:
        self._dirname = Path(dirname)

    def workflows_dir(self, workspace_path: str | Path) -> Path:
        return Path(workspace_path) / self._dirname

    def _ensure_dir(self, workspace_path: str | Path) -> Path:
        directory = self.workflows_dir(workspace_path)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def _path_for(self, workspace_path: str | Path, workflow_id: str) -> Path:
        if not workflow_id.strip() or any(part in workflow_id for part in ("/", "\\", "..")):
            raise WorkflowValidationError(f"Invalid workflow id: {workflow_id!r}")
        return self._ensure_dir(workspace_path) / f"{workflow_id}.json"

    @staticmethod
    def _read(path: Path) -> Workflow:
        try:
            return Workflow.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise WorkflowStoreError(f"Failed to read workflow: {e}") from e
        except ValidationError as e:
            raise WorkflowStoreError(f"Invalid workflow JSON in {path.name}: {e}") from e

    def list(self, workspace_path: str | Path) -> list[WorkflowSummary]:
        directory = self._ensure_dir(workspace_path)
        workflows = [self._read(p) for p in directory.glob("*.json") if p.is_file()]
        workflows.sort(key=lambda w: (w.name.lower(), w.id))
        return [WorkflowSummary.from_workflow(w) for w in workflows]

    def load(self, workspace_path: str | Path, workflow_id: str) -> Workflow:
        path = self._path_for(workspace_path, workflow_id)
        if not path.exists():
            raise WorkflowNotFoundError(workflow_id=workflow_id)
        return self._read(path)

    def save(self, workspace_path: str | Path, workflow: Workflow) -> Workflow:
        validate_workflow(workflow)
        path = self._path_for(workspace_path, workflow.id)
        normalized = touch(workflow)
        payload = normalized.model_dump(mode="json")
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info(
            "Workflow saved",
            extra={"workflow_id": normalized.id, "steps": len(normalized.steps), "path": str(path)},
        )
        return normalized

    def delete(self, workspace_path: str | Path, workflow_id: str) -> None:
        path = self._path_for(workspace_path, workflow_id)
        if not path.exists():
            raise WorkflowNotFoundError(workflow_id=workflow_id)
        path.unlink()
        logger.info("Workflow deleted", extra={"workflow_id": workflow_id})
