"""Request bodies for the REST server.

Responses are the engine's own records (workflows, executions, stats), dumped
in JSON mode.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from board_automation.engine.workflow.models import Action, Condition, Trigger, WorkflowSeed


class WorkflowCreateRequest(WorkflowSeed):
    created_by: str = "system"


class WorkflowUpdateRequest(BaseModel):
    """Partial update; only the fields that are set are applied."""

    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    trigger: Trigger | None = None
    conditions: list[Condition] | None = None
    actions: list[Action] | None = None


class InstantiateRequest(BaseModel):
    created_by: str = "system"


class RunRequest(BaseModel):
    actor_id: str = "system"
    task_id: str | None = None
    board_id: str | None = None


class EventRequest(BaseModel):
    type: str = Field(min_length=1)
    actor_id: str = "system"
    task_id: str | None = None
    board_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
