"""Workflow REST API.

All routes are mounted under `/api`. Every route accepts an optional
`workspace` query parameter; without it the configured default workspace is
used.

A paused run is the approval gate over HTTP: it stays in `awaiting_approval`
until a client posts to `/runs/{id}/approve` or `/runs/{id}/decline`.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, HTTPException, Query, Request

from anvil_workflows import __version__
from anvil_workflows.engine.workflow.events import RunCommand, RunCommandType
from anvil_workflows.engine.workflow.models import (
    Workflow,
    WorkflowSummary,
    WorkflowValidationError,
)
from anvil_workflows.engine.workflow.runner import RunOutcome, RunStatus, WorkflowRunner
from anvil_workflows.engine.workflow.store import (
    WorkflowNotFoundError,
    WorkflowStore,
    WorkflowStoreError,
)
from anvil_workflows.engine.workflow.templates import extract_param_keys, get_missing_params
from anvil_workflows.server.config import ServerSettings
from anvil_workflows.server.models import ApiRun, ApiRunOutcome, ParameterValues, PreviewResponse

router = APIRouter()

_ERROR_STATUS: dict[RunStatus, int] = {
    RunStatus.NOT_FOUND: 404,
    RunStatus.INVALID: 422,
    RunStatus.BUSY: 409,
    RunStatus.NO_ACTIVE_RUN: 409,
    RunStatus.FAILED: 503,
}


def _settings(request: Request) -> ServerSettings:
    settings = getattr(request.app.state, "settings", None)
    if not isinstance(settings, ServerSettings):
        raise HTTPException(status_code=500, detail="Server settings not configured")
    return settings


def _store(request: Request) -> WorkflowStore:
    return request.app.state.store


def _runner(request: Request) -> WorkflowRunner:
    return request.app.state.runner


def _workspace(request: Request, workspace: str | None) -> str:
    if workspace and workspace.strip():
        return str(Path(workspace.strip()).expanduser().resolve())
    default = _settings(request).default_workspace
    if default is None:
        raise HTTPException(
            status_code=400,
            detail="No workspace given. Pass ?workspace=... or set ANVIL_WORKSPACE.",
        )
    return str(default.expanduser().resolve())


def _load(store: WorkflowStore, workspace: str, workflow_id: str) -> Workflow:
    try:
        return store.load(workspace, workflow_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except WorkflowValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except WorkflowStoreError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


def _respond(outcome: RunOutcome) -> ApiRunOutcome:
    status_code = _ERROR_STATUS.get(outcome.status)
    if status_code is not None:
        raise HTTPException(status_code=status_code, detail=outcome.message or outcome.status.value)
    return ApiRunOutcome.from_outcome(outcome)


@router.get("/health")
def health() -> dict[str, object]:
    return {"status": "ok", "ok": True, "version": __version__}


@router.get("/workflows", response_model=list[WorkflowSummary])
def list_workflows(
    request: Request, workspace: str | None = Query(default=None)
) -> list[WorkflowSummary]:
    try:
        return _store(request).list(_workspace(request, workspace))
    except WorkflowStoreError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.post("/workflows", response_model=Workflow)
def save_workflow(
    request: Request, workflow: Workflow, workspace: str | None = Query(default=None)
) -> Workflow:
    try:
        return _store(request).save(_workspace(request, workspace), workflow)
    except WorkflowValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.get("/workflows/{workflow_id}", response_model=Workflow)
def get_workflow(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> Workflow:
    return _load(_store(request), _workspace(request, workspace), workflow_id)


@router.delete("/workflows/{workflow_id}")
def delete_workflow(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> dict[str, object]:
    try:
        _store(request).delete(_workspace(request, workspace), workflow_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except WorkflowValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return {"ok": True, "id": workflow_id}


@router.post("/workflows/{workflow_id}/preview", response_model=PreviewResponse)
def preview_workflow(
    request: Request,
    workflow_id: str,
    body: ParameterValues,
    workspace: str | None = Query(default=None),
) -> PreviewResponse:
    ws = _workspace(request, workspace)
    workflow = _load(_store(request), ws, workflow_id)
    keys = extract_param_keys(workflow.steps)
    return PreviewResponse(
        workflow_id=workflow.id,
        param_keys=keys,
        missing_params=get_missing_params(keys, body.values),
        commands=WorkflowRunner.preview(workflow, body.values, ws),
    )


@router.post("/workflows/{workflow_id}/run", response_model=ApiRunOutcome)
def run_workflow(
    request: Request,
    workflow_id: str,
    body: ParameterValues,
    workspace: str | None = Query(default=None),
) -> ApiRunOutcome:
    command = RunCommand(
        type=RunCommandType.RUN,
        workspace_path=_workspace(request, workspace),
        workflow_id=workflow_id,
        values=dict(body.values),
    )
    return _respond(_runner(request).handle(command))


@router.get("/runs", response_model=list[ApiRun])
def list_runs(request: Request, workspace: str | None = Query(default=None)) -> list[ApiRun]:
    ws = _workspace(request, workspace) if workspace else None
    return [ApiRun.from_state(s) for s in _runner(request).list_runs(ws)]


@router.get("/runs/{workflow_id}", response_model=ApiRun)
def get_run(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> ApiRun:
    state = _runner(request).get_run(_workspace(request, workspace), workflow_id)
    if state is None:
        raise HTTPException(status_code=404, detail="No active run for this workflow")
    return ApiRun.from_state(state)


def _decide(
    request: Request, workflow_id: str, workspace: str | None, kind: RunCommandType
) -> ApiRunOutcome:
    command = RunCommand(
        type=kind, workspace_path=_workspace(request, workspace), workflow_id=workflow_id
    )
    return _respond(_runner(request).handle(command))


@router.post("/runs/{workflow_id}/approve", response_model=ApiRunOutcome)
def approve_step(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> ApiRunOutcome:
    return _decide(request, workflow_id, workspace, RunCommandType.APPROVE)


@router.post("/runs/{workflow_id}/decline", response_model=ApiRunOutcome)
def decline_step(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> ApiRunOutcome:
    return _decide(request, workflow_id, workspace, RunCommandType.DECLINE)


@router.post("/runs/{workflow_id}/stop", response_model=ApiRunOutcome)
def stop_run(
    request: Request, workflow_id: str, workspace: str | None = Query(default=None)
) -> ApiRunOutcome:
    return _decide(request, workflow_id, workspace, RunCommandType.STOP)
