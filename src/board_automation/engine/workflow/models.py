"""Workflow automation records.

Triggers and actions are tagged unions keyed by ``type``: each variant carries
only the configuration that applies to it. Types this version does not know
about still load, as :class:`UnhandledTrigger` / :class:`UnhandledAction`, so
state written by a newer release round-trips instead of failing validation.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

from board_automation.board.models import Priority, new_id


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


# --- Triggers ---------------------------------------------------------------

TaskTriggerType = Literal[
    "task_created",
    "task_updated",
    "task_completed",
    "task_overdue",
    "task_assigned",
]

TASK_TRIGGER_TYPES: frozenset[str] = frozenset(
    {"task_created", "task_updated", "task_completed", "task_overdue", "task_assigned"}
)
TRIGGER_TYPES: frozenset[str] = TASK_TRIGGER_TYPES | {"due_date_approaching", "schedule", "manual"}

_HH_MM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TaskTriggerConfig(BaseModel):
    """Optional filters narrowing which tasks fire the trigger."""

    board_id: str | None = None
    column_id: str | None = None
    assignee_id: str | None = None
    priority: Priority | None = None
    labels: list[str] = Field(default_factory=list)


class TaskTrigger(BaseModel):
    type: TaskTriggerType
    config: TaskTriggerConfig = Field(default_factory=TaskTriggerConfig)


class DueDateTriggerConfig(TaskTriggerConfig):
    days_before_due: int = Field(default=1, ge=0)


class DueDateTrigger(BaseModel):
    type: Literal["due_date_approaching"] = "due_date_approaching"
    config: DueDateTriggerConfig = Field(default_factory=DueDateTriggerConfig)


class ScheduleConfig(BaseModel):
    type: Literal["daily", "weekly", "monthly", "custom"] = "daily"
    time: str = "09:00"
    days: list[int] = Field(default_factory=list, description="0=Sunday .. 6=Saturday")
    date: int | None = Field(default=None, ge=1, le=31, description="Day of month")
    cron_expression: str | None = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not _HH_MM.match(value):
            raise ValueError("time must be HH:MM (24h)")
        return value

    @field_validator("days")
    @classmethod
    def _check_days(cls, value: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in value):
            raise ValueError("days must be in 0..6")
        return value


class ScheduleTriggerConfig(BaseModel):
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)


class ScheduleTrigger(BaseModel):
    type: Literal["schedule"] = "schedule"
    config: ScheduleTriggerConfig = Field(default_factory=ScheduleTriggerConfig)


class ManualTrigger(BaseModel):
    type: Literal["manual"] = "manual"
    config: dict[str, Any] = Field(default_factory=dict)


class UnhandledTrigger(BaseModel):
    type: str
    config: dict[str, Any] = Field(default_factory=dict)


def _type_of(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("type")
    return getattr(value, "type", None)


def _trigger_tag(value: Any) -> str:
    kind = _type_of(value)
    if kind in TASK_TRIGGER_TYPES:
        return "task"
    if kind in {"due_date_approaching", "schedule", "manual"}:
        return str(kind)
    return "unhandled"


Trigger = Annotated[
    Union[
        Annotated[TaskTrigger, Tag("task")],
        Annotated[DueDateTrigger, Tag("due_date_approaching")],
        Annotated[ScheduleTrigger, Tag("schedule")],
        Annotated[ManualTrigger, Tag("manual")],
        Annotated[UnhandledTrigger, Tag("unhandled")],
    ],
    Discriminator(_trigger_tag),
]


# --- Conditions -------------------------------------------------------------

CONDITION_OPERATORS: frozenset[str] = frozenset(
    {
        "equals",
        "not_equals",
        "contains",
        "not_contains",
        "greater_than",
        "less_than",
        "is_empty",
        "is_not_empty",
        "in",
        "not_in",
    }
)


class Condition(BaseModel):
    """A predicate over one context field.

    ``operator`` is kept as a plain string: an operator this version does not
    know evaluates as a non-match instead of rejecting the whole workflow.
    """

    id: str = Field(default_factory=lambda: new_id("condition"))
    type: Literal["task_field", "user_field", "board_field", "time_based", "custom"] = (
        "task_field"
    )
    field: str
    operator: str
    value: Any = None


# --- Actions ----------------------------------------------------------------


class _ActionBase(BaseModel):
    id: str = Field(default_factory=lambda: new_id("action"))
    order: int = 0


class AssignTaskConfig(BaseModel):
    assignee_id: str | None = Field(
        default=None, description="User id, or 'project-manager' for the first admin"
    )


class AssignTaskAction(_ActionBase):
    type: Literal["assign_task"] = "assign_task"
    config: AssignTaskConfig = Field(default_factory=AssignTaskConfig)


class SendNotificationConfig(BaseModel):
    message: str | None = None
    recipients: list[str] = Field(default_factory=list)
    notification_type: Literal["in_app", "email", "slack"] = "in_app"


class SendNotificationAction(_ActionBase):
    type: Literal["send_notification"] = "send_notification"
    config: SendNotificationConfig = Field(default_factory=SendNotificationConfig)


class MoveTaskConfig(BaseModel):
    target_column_id: str | None = None


class MoveTaskAction(_ActionBase):
    type: Literal["move_task"] = "move_task"
    config: MoveTaskConfig = Field(default_factory=MoveTaskConfig)


class SetPriorityConfig(BaseModel):
    priority: Priority | None = None


class SetPriorityAction(_ActionBase):
    type: Literal["set_priority"] = "set_priority"
    config: SetPriorityConfig = Field(default_factory=SetPriorityConfig)


class AddCommentConfig(BaseModel):
    comment_text: str | None = None


class AddCommentAction(_ActionBase):
    type: Literal["add_comment"] = "add_comment"
    config: AddCommentConfig = Field(default_factory=AddCommentConfig)


class CreateTaskConfig(BaseModel):
    task_title: str | None = None
    task_description: str = ""
    task_priority: Priority = "Medium"


class CreateTaskAction(_ActionBase):
    type: Literal["create_task"] = "create_task"
    config: CreateTaskConfig = Field(default_factory=CreateTaskConfig)


class SetDueDateConfig(BaseModel):
    due_date_offset: int | None = Field(default=None, description="Days from now")
    specific_date: str | None = Field(default=None, description="YYYY-MM-DD")


class SetDueDateAction(_ActionBase):
    type: Literal["set_due_date"] = "set_due_date"
    config: SetDueDateConfig = Field(default_factory=SetDueDateConfig)


class LabelConfig(BaseModel):
    label_id: str | None = None


class AddLabelAction(_ActionBase):
    type: Literal["add_label"] = "add_label"
    config: LabelConfig = Field(default_factory=LabelConfig)


class RemoveLabelAction(_ActionBase):
    type: Literal["remove_label"] = "remove_label"
    config: LabelConfig = Field(default_factory=LabelConfig)


class CreateSubtaskConfig(BaseModel):
    task_title: str | None = None


class CreateSubtaskAction(_ActionBase):
    type: Literal["create_subtask"] = "create_subtask"
    config: CreateSubtaskConfig = Field(default_factory=CreateSubtaskConfig)


class UnhandledAction(_ActionBase):
    type: str
    config: dict[str, Any] = Field(default_factory=dict)


ACTION_TYPES: frozenset[str] = frozenset(
    {
        "assign_task",
        "send_notification",
        "move_task",
        "set_priority",
        "add_comment",
        "create_task",
        "set_due_date",
        "add_label",
        "remove_label",
        "create_subtask",
    }
)


def _action_tag(value: Any) -> str:
    kind = _type_of(value)
    return str(kind) if kind in ACTION_TYPES else "unhandled"


Action = Annotated[
    Union[
        Annotated[AssignTaskAction, Tag("assign_task")],
        Annotated[SendNotificationAction, Tag("send_notification")],
        Annotated[MoveTaskAction, Tag("move_task")],
        Annotated[SetPriorityAction, Tag("set_priority")],
        Annotated[AddCommentAction, Tag("add_comment")],
        Annotated[CreateTaskAction, Tag("create_task")],
        Annotated[SetDueDateAction, Tag("set_due_date")],
        Annotated[AddLabelAction, Tag("add_label")],
        Annotated[RemoveLabelAction, Tag("remove_label")],
        Annotated[CreateSubtaskAction, Tag("create_subtask")],
        Annotated[UnhandledAction, Tag("unhandled")],
    ],
    Discriminator(_action_tag),
]


# --- Workflows --------------------------------------------------------------


class WorkflowSeed(BaseModel):
    """Everything about a workflow that a user (or a template) authors."""

    name: str
    description: str = ""
    is_active: bool = True
    trigger: Trigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)


class Workflow(WorkflowSeed):
    id: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    execution_count: int = 0
    last_executed: datetime | None = None

    def ordered_actions(self) -> list[Action]:
        # sorted() is stable: equal orders keep their authored sequence.
        return sorted(self.actions, key=lambda a: a.order)


ExecutionStatus = Literal["running", "completed", "failed"]
LogLevel = Literal["info", "warning", "error"]


class ExecutionLogEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_id("log"))
    timestamp: datetime = Field(default_factory=utc_now)
    level: LogLevel
    message: str
    action_id: str | None = None


class WorkflowExecution(BaseModel):
    id: str = Field(default_factory=lambda: new_id("execution"))
    workflow_id: str
    triggered_by: str
    triggered_at: datetime = Field(default_factory=utc_now)
    status: ExecutionStatus = "running"
    actions_executed: int = 0
    total_actions: int = 0
    execution_time: int | None = Field(default=None, description="Milliseconds")
    error: str | None = None
    logs: list[ExecutionLogEntry] = Field(default_factory=list)

    def log(self, level: LogLevel, message: str, *, action_id: str | None = None) -> None:
        self.logs.append(ExecutionLogEntry(level=level, message=message, action_id=action_id))


WorkflowCategory = Literal[
    "task_management",
    "notifications",
    "project_management",
    "team_collaboration",
    "reporting",
    "integration",
    "custom",
]


class WorkflowTemplate(BaseModel):
    id: str
    name: str
    description: str
    category: WorkflowCategory
    icon: str
    workflow: WorkflowSeed


class WorkflowStats(BaseModel):
    total_workflows: int
    active_workflows: int
    total_executions: int
    successful_executions: int
    failed_executions: int
    average_execution_time: int
    most_used_trigger: str
    most_used_action: str


# --- Auxiliary records ------------------------------------------------------

CustomFieldType = Literal[
    "text",
    "number",
    "date",
    "select",
    "multi_select",
    "checkbox",
    "url",
    "email",
    "phone",
    "currency",
    "percentage",
]


class CustomFieldOption(BaseModel):
    id: str
    label: str
    value: str
    color: str | None = None


class CustomFieldValidation(BaseModel):
    min_length: int | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    required: bool | None = None


class CustomFieldSeed(BaseModel):
    name: str
    type: CustomFieldType
    description: str | None = None
    required: bool = False
    options: list[CustomFieldOption] = Field(default_factory=list)
    default_value: str | float | bool | list[str] | None = None
    validation: CustomFieldValidation | None = None


class CustomField(CustomFieldSeed):
    id: str
    created_at: datetime
    updated_at: datetime


class AutomationRuleTrigger(BaseModel):
    event: str
    conditions: dict[str, str | float | bool] = Field(default_factory=dict)


class AutomationRuleAction(BaseModel):
    type: str
    config: dict[str, str | float | bool] = Field(default_factory=dict)


class AutomationRuleSeed(BaseModel):
    """A single trigger -> single action shortcut, stored beside full workflows."""

    name: str
    description: str = ""
    is_active: bool = True
    trigger: AutomationRuleTrigger
    action: AutomationRuleAction


class AutomationRule(AutomationRuleSeed):
    id: str
    created_at: datetime
    execution_count: int = 0
