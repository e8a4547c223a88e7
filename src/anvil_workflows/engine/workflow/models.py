"""Workflow definitions as stored on disk and exchanged over the API.

A workflow is a named, ordered list of shell steps. Step commands are templates
that may contain `{{identifier}}` placeholders.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class WorkflowStep(BaseModel):
    id: str
    title: str = Field(default="")
    command: str = Field(default="")
    description: str | None = Field(default=None)

    # Unset means "ask first": only an explicit False skips the approval gate.
    requires_approval: bool | None = Field(default=None)
    working_dir: str | None = Field(default=None)

    @property
    def needs_approval(self) -> bool:
        return self.requires_approval is not False


class Workflow(BaseModel):
    """A complete workflow definition. Always read and written as a whole."""

    id: str
    name: str = Field(default="")
    description: str | None = Field(default=None)
    steps: list[WorkflowStep] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    created_at: str = Field(default="")
    updated_at: str = Field(default="")


class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: str | None = None
    step_count: int

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowSummary:
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            step_count=len(workflow.steps),
        )


class WorkflowValidationError(ValueError):
    """Raised when a workflow definition cannot be persisted."""


def validate_workflow(workflow: Workflow) -> None:
    """Reject definitions that are not worth saving.

    This is a save-time check only. Running an already-saved workflow never
    re-validates it.
    """

    if not workflow.name.strip():
        raise WorkflowValidationError("Workflow name is required.")
    if not workflow.steps:
        raise WorkflowValidationError("Add at least one step.")
    for step in workflow.steps:
        if not step.command.strip():
            raise WorkflowValidationError("Each step needs a command.")
