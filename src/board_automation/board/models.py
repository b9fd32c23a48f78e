"""Task board records shared with the automation engine.

These mirror the board application's own JSON shapes. The engine never owns
them; it only reads them through a :class:`BoardRepository` and hands mutations
back to it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

Priority = Literal["Low", "Medium", "High"]
Role = Literal["admin", "employee"]
ActivityType = Literal[
    "created",
    "updated",
    "opened",
    "comment",
    "label",
    "member",
    "dueDate",
    "attachment",
    "subtask",
    "priority",
    "moved",
]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


class Member(BaseModel):
    id: str
    name: str
    avatar: str | None = None


class Label(BaseModel):
    id: str
    name: str
    color: str


class Subtask(BaseModel):
    id: str = Field(default_factory=lambda: new_id("subtask"))
    title: str
    done: bool = False


class Activity(BaseModel):
    id: str = Field(default_factory=lambda: new_id("activity"))
    type: ActivityType
    message: str
    at: datetime = Field(default_factory=_utc_now)


class Card(BaseModel):
    """A task on a board column."""

    id: str
    title: str
    description: str = ""
    priority: Priority | None = None
    due_date: str | None = None
    start_date: str | None = None
    labels: list[Label] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)
    subtasks: list[Subtask] = Field(default_factory=list)
    activity: list[Activity] = Field(default_factory=list)
    attachments: list[dict[str, object]] = Field(default_factory=list)
    comments: list[dict[str, object]] = Field(default_factory=list)
    time_entries: list[dict[str, object]] = Field(default_factory=list)

    def has_member(self, user_id: str) -> bool:
        return any(m.id == user_id for m in self.members)


class Column(BaseModel):
    id: str
    title: str
    position: int = 0
    cards: list[Card] = Field(default_factory=list)

    def index_of(self, task_id: str) -> int | None:
        for idx, card in enumerate(self.cards):
            if card.id == task_id:
                return idx
        return None


class Board(BaseModel):
    id: str
    title: str
    description: str = ""
    columns: list[Column] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)
    created_by: str = ""

    def column(self, column_id: str) -> Column | None:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def column_of(self, task_id: str) -> Column | None:
        for column in self.columns:
            if column.index_of(task_id) is not None:
                return column
        return None


class User(BaseModel):
    id: str
    name: str
    email: str = ""
    role: Role = "employee"
    avatar: str | None = None
    department: str | None = None
    title: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


LABEL_PRESETS: tuple[Label, ...] = (
    Label(id="lbl-urgent", name="Urgent", color="#ef4444"),
    Label(id="lbl-bug", name="Bug", color="#f59e0b"),
    Label(id="lbl-feat", name="Feature", color="#10b981"),
    Label(id="lbl-ui", name="UI/UX", color="#3b82f6"),
)


def find_label_preset(label_id: str) -> Label | None:
    for label in LABEL_PRESETS:
        if label.id == label_id:
            return label
    return None
