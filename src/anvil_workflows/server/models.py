"""Pydantic models for the REST server."""

from __future__ import annotations

from pydantic import BaseModel, Field

from anvil_workflows.engine.workflow.runner import RunOutcome
from anvil_workflows.engine.workflow.state_machine import RunState


class ParameterValues(BaseModel):
    values: dict[str, str] = Field(default_factory=dict)


class PreviewResponse(BaseModel):
    workflow_id: str
    param_keys: list[str]
    missing_params: list[str]
    commands: list[str]


class ApiRunOutcome(BaseModel):
    status: str
    workflow_id: str
    step_index: int | None = None
    step_count: int | None = None
    step_title: str | None = None
    pending_command: str | None = None
    missing_params: list[str] = Field(default_factory=list)
    dispatched: list[str] = Field(default_factory=list)
    message: str = ""

    @classmethod
    def from_outcome(cls, outcome: RunOutcome) -> ApiRunOutcome:
        return cls.model_validate(outcome.to_json())


class ApiRun(BaseModel):
    workflow_id: str
    workspace_path: str
    phase: str
    step_index: int
    step_count: int
    step_title: str | None = None
    pending_command: str | None = None
    resolved_commands: list[str] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: RunState) -> ApiRun:
        return cls.model_validate(state.to_json())
