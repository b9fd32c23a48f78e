"""Canned workflow templates.

Templates are read-only. Instantiating one copies its seed into a brand new
workflow owned by the requesting user.
"""

from __future__ import annotations

import logging

from board_automation.engine.workflow.models import Workflow, WorkflowTemplate
from board_automation.engine.workflow.store import RuleStore

logger = logging.getLogger(__name__)

_TEMPLATES: tuple[dict[str, object], ...] = (
    {
        "id": "auto-assign-high-priority",
        "name": "Auto-assign high priority tasks",
        "description": "Assign high priority tasks to the project manager automatically",
        "category": "task_management",
        "icon": "🎯",
        "workflow": {
            "name": "Auto-assign high priority tasks",
            "description": (
                "When a task is created with high priority, assign it to the project manager"
            ),
            "is_active": True,
            "trigger": {"type": "task_created", "config": {"priority": "High"}},
            "conditions": [],
            "actions": [
                {
                    "id": "action-1",
                    "type": "assign_task",
                    "config": {"assignee_id": "project-manager"},
                    "order": 1,
                },
                {
                    "id": "action-2",
                    "type": "send_notification",
                    "config": {
                        "message": "A high priority task was assigned to you: {task.title}",
                        "notification_type": "in_app",
                    },
                    "order": 2,
                },
            ],
        },
    },
    {
        "id": "overdue-reminder",
        "name": "Overdue task reminder",
        "description": "Send a daily reminder about overdue tasks",
        "category": "notifications",
        "icon": "⏰",
        "workflow": {
            "name": "Overdue task reminder",
            "description": "Send a daily notification for overdue tasks",
            "is_active": True,
            "trigger": {
                "type": "schedule",
                "config": {"schedule": {"type": "daily", "time": "09:00"}},
            },
            "conditions": [],
            "actions": [
                {
                    "id": "action-1",
                    "type": "send_notification",
                    "config": {
                        "message": "You have overdue tasks that need follow-up",
                        "notification_type": "email",
                    },
                    "order": 1,
                }
            ],
        },
    },
    {
        "id": "auto-move-completed",
        "name": "Move completed tasks automatically",
        "description": "Move a task to the 'done' column once all of its subtasks are complete",
        "category": "task_management",
        "icon": "✅",
        "workflow": {
            "name": "Move completed tasks automatically",
            "description": "Move tasks automatically when every subtask is complete",
            "is_active": True,
            "trigger": {"type": "task_updated", "config": {}},
            "conditions": [
                {
                    "id": "condition-1",
                    "type": "task_field",
                    "field": "subtasks_completed",
                    "operator": "equals",
                    "value": True,
                }
            ],
            "actions": [
                {
                    "id": "action-1",
                    "type": "move_task",
                    "config": {"target_column_id": "done"},
                    "order": 1,
                }
            ],
        },
    },
)


class TemplateCatalog:
    def __init__(self, rule_store: RuleStore) -> None:
        self._rule_store = rule_store
        self._templates = [WorkflowTemplate.model_validate(t) for t in _TEMPLATES]

    def list_templates(self) -> list[WorkflowTemplate]:
        return [t.model_copy(deep=True) for t in self._templates]

    def get(self, template_id: str) -> WorkflowTemplate | None:
        for template in self._templates:
            if template.id == template_id:
                return template.model_copy(deep=True)
        return None

    def instantiate(self, template_id: str, *, created_by: str) -> Workflow | None:
        template = self.get(template_id)
        if template is None:
            logger.warning("Unknown workflow template", extra={"template_id": template_id})
            return None
        return self._rule_store.create(template.workflow, created_by=created_by)
