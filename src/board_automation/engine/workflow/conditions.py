"""Condition evaluation.

Everything here is pure: no I/O, no clock, no mutation of its inputs. The same
conditions and context always give the same answer.

Evaluation is fail-closed. A missing field, an unknown operator or a value of
the wrong type is a non-match, so a misconfigured workflow skips its actions
rather than mutating tasks unexpectedly.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from board_automation.board.models import Card
from board_automation.engine.workflow.models import (
    Condition,
    DueDateTrigger,
    TaskTrigger,
    TaskTriggerConfig,
    Trigger,
)

_MISSING = object()
_EMPTY_VALUES: tuple[Any, ...] = (None, "", [], {}, ())


def build_context(
    *,
    task: Card | None,
    board_id: str | None = None,
    column_id: str | None = None,
    actor_id: str | None = None,
    today: date | None = None,
    extra: Mapping[str, object] | None = None,
) -> dict[str, object]:
    """Flatten the triggering task into the field lookup used by conditions.

    ``extra`` (the event payload) wins over derived keys so callers can inject
    fields the board does not model.
    """

    context: dict[str, object] = {}
    if board_id is not None:
        context["board_id"] = board_id
    if column_id is not None:
        context["column_id"] = column_id
    if actor_id is not None:
        context["actor_id"] = actor_id

    if task is not None:
        done = sum(1 for s in task.subtasks if s.done)
        context.update(
            {
                "task_id": task.id,
                "title": task.title,
                "description": task.description,
                "priority": task.priority,
                "due_date": task.due_date,
                "start_date": task.start_date,
                "labels": [label.name for label in task.labels],
                "label_ids": [label.id for label in task.labels],
                "members": [m.id for m in task.members],
                "member_names": [m.name for m in task.members],
                "subtasks_total": len(task.subtasks),
                "subtasks_done": done,
                "subtasks_completed": bool(task.subtasks) and done == len(task.subtasks),
            }
        )
        if task.due_date and today is not None:
            days = _days_until(task.due_date, today)
            if days is not None:
                context["days_until_due"] = days

    if extra:
        context.update(extra)
    return context


def _days_until(due_date: str, today: date) -> int | None:
    try:
        due = date.fromisoformat(due_date[:10])
    except ValueError:
        return None
    return (due - today).days


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _compare(actual: object, expected: object) -> int | None:
    if _is_number(actual) and _is_number(expected):
        a, b = float(actual), float(expected)  # type: ignore[arg-type]
    elif isinstance(actual, str) and isinstance(expected, str):
        a, b = actual, expected  # type: ignore[assignment]
    else:
        return None
    return (a > b) - (a < b)


def _contains(actual: object, expected: object) -> bool | None:
    if isinstance(actual, str):
        if not isinstance(expected, str):
            return None
        return expected.lower() in actual.lower()
    if isinstance(actual, Sequence | set | frozenset):
        return expected in actual
    return None


def evaluate_condition(condition: Condition, context: Mapping[str, object]) -> bool:
    actual = context.get(condition.field, _MISSING)
    if actual is _MISSING:
        return False

    expected = condition.value
    op = condition.operator

    if op == "equals":
        return actual == expected
    if op == "not_equals":
        return actual != expected
    if op in {"contains", "not_contains"}:
        found = _contains(actual, expected)
        if found is None:
            return False
        return found if op == "contains" else not found
    if op in {"greater_than", "less_than"}:
        cmp = _compare(actual, expected)
        if cmp is None:
            return False
        return cmp > 0 if op == "greater_than" else cmp < 0
    if op == "is_empty":
        return actual in _EMPTY_VALUES
    if op == "is_not_empty":
        return actual not in _EMPTY_VALUES
    if op in {"in", "not_in"}:
        if not isinstance(expected, list | tuple | set | frozenset):
            return False
        hit = actual in expected
        return hit if op == "in" else not hit

    return False


def evaluate(conditions: Sequence[Condition], context: Mapping[str, object]) -> bool:
    """AND all conditions; an empty list is an unconditional match."""

    return all(evaluate_condition(c, context) for c in conditions)


def _task_filters_match(config: TaskTriggerConfig, context: Mapping[str, object]) -> bool:
    if config.board_id is not None and context.get("board_id") != config.board_id:
        return False
    if config.column_id is not None and context.get("column_id") != config.column_id:
        return False
    if config.priority is not None and context.get("priority") != config.priority:
        return False
    if config.assignee_id is not None:
        members = context.get("members")
        if not isinstance(members, list) or config.assignee_id not in members:
            return False
    if config.labels:
        names = context.get("labels")
        ids = context.get("label_ids")
        present = set(names if isinstance(names, list) else []) | set(
            ids if isinstance(ids, list) else []
        )
        if not set(config.labels) <= present:
            return False
    return True


def trigger_filters_match(trigger: Trigger, context: Mapping[str, object]) -> bool:
    """Apply the trigger's own filter bag (priority, board, labels, ...)."""

    if isinstance(trigger, TaskTrigger):
        return _task_filters_match(trigger.config, context)
    if isinstance(trigger, DueDateTrigger):
        if not _task_filters_match(trigger.config, context):
            return False
        days = context.get("days_until_due")
        if not isinstance(days, int):
            return False
        return 0 <= days <= trigger.config.days_before_due
    return True
