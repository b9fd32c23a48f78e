"""Persisted workflow state.

Each collection lives under one fixed key and every write stores the full
snapshot of that collection (no patches):

- ``workflows``
- ``workflow_executions``
- ``automation_rules``
- ``custom_fields``

``JsonFileStore`` keeps one ``<key>.json`` file per key in a directory.
``MemoryStore`` is the same contract without a disk.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from board_automation.engine.workflow.models import (
    AutomationRule,
    AutomationRuleSeed,
    CustomField,
    CustomFieldSeed,
    Workflow,
    WorkflowExecution,
    WorkflowSeed,
    utc_now,
)

logger = logging.getLogger(__name__)

WORKFLOWS_KEY = "workflows"
EXECUTIONS_KEY = "workflow_executions"
AUTOMATION_RULES_KEY = "automation_rules"
CUSTOM_FIELDS_KEY = "custom_fields"

_PROTECTED_FIELDS = frozenset({"id", "created_at", "created_by"})


class KeyValueStore(Protocol):
    def load(self, key: str) -> list[dict[str, Any]]: ...

    def save(self, key: str, items: list[dict[str, Any]]) -> None: ...


class JsonFileStore:
    """One JSON list per key, stored as ``<root>/<key>.json``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def load(self, key: str) -> list[dict[str, Any]]:
        path = self.path_for(key)
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(
                "State file is not valid JSON; treating as empty", extra={"path": str(path)}
            )
            return []
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(
                "State file has unexpected shape; treating as empty", extra={"path": str(path)}
            )
            return []
        return [item for item in raw if isinstance(item, dict)]

    def save(self, key: str, items: list[dict[str, Any]]) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(items, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}

    def load(self, key: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._data.get(key, []))

    def save(self, key: str, items: list[dict[str, Any]]) -> None:
        self._data[key] = copy.deepcopy(items)


def _dump(items: Sequence[BaseModel]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in items]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


class RuleStore:
    """CRUD over workflow definitions and their auxiliary records.

    Lookups never raise for unknown ids: they return None or False and the
    caller decides what that means.
    """

    def __init__(self, store: KeyValueStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()

    # --- workflows --------------------------------------------------------

    def _load_unlocked(self) -> list[Workflow]:
        return [Workflow.model_validate(item) for item in self._store.load(WORKFLOWS_KEY)]

    def _save_unlocked(self, workflows: list[Workflow]) -> None:
        self._store.save(WORKFLOWS_KEY, _dump(workflows))

    def list(self) -> list[Workflow]:
        with self._lock:
            return self._load_unlocked()

    def get(self, workflow_id: str) -> Workflow | None:
        with self._lock:
            for workflow in self._load_unlocked():
                if workflow.id == workflow_id:
                    return workflow
            return None

    def create(self, seed: WorkflowSeed, *, created_by: str) -> Workflow:
        now = self._clock()
        workflow = Workflow.model_validate(
            {
                **seed.model_dump(),
                "id": _new_id("workflow"),
                "created_by": created_by,
                "created_at": now,
                "updated_at": now,
                "execution_count": 0,
                "last_executed": None,
            }
        )
        with self._lock:
            workflows = self._load_unlocked()
            workflows.append(workflow)
            self._save_unlocked(workflows)
        logger.info(
            "Workflow created", extra={"workflow_id": workflow.id, "workflow_name": workflow.name}
        )
        return workflow

    def _modify(self, workflow_id: str, change: Callable[[Workflow], dict[str, Any]]) -> bool:
        with self._lock:
            workflows = self._load_unlocked()
            for idx, workflow in enumerate(workflows):
                if workflow.id != workflow_id:
                    continue
                updates = change(workflow)
                workflows[idx] = Workflow.model_validate(
                    {**workflow.model_dump(), **updates, "updated_at": self._clock()}
                )
                self._save_unlocked(workflows)
                return True
            return False

    def update(self, workflow_id: str, **changes: Any) -> bool:
        """Merge ``changes`` into the workflow and bump ``updated_at``."""

        allowed = {k: v for k, v in changes.items() if k not in _PROTECTED_FIELDS}
        return self._modify(workflow_id, lambda _wf: allowed)

    def toggle_active(self, workflow_id: str) -> bool:
        return self._modify(workflow_id, lambda wf: {"is_active": not wf.is_active})

    def record_execution(self, workflow_id: str, at: datetime) -> bool:
        return self._modify(
            workflow_id,
            lambda wf: {"execution_count": wf.execution_count + 1, "last_executed": at},
        )

    def delete(self, workflow_id: str) -> bool:
        with self._lock:
            workflows = self._load_unlocked()
            kept = [w for w in workflows if w.id != workflow_id]
            if len(kept) == len(workflows):
                return False
            self._save_unlocked(kept)
        logger.info("Workflow deleted", extra={"workflow_id": workflow_id})
        return True

    # --- custom fields ----------------------------------------------------

    def list_custom_fields(self) -> list[CustomField]:
        with self._lock:
            return [CustomField.model_validate(i) for i in self._store.load(CUSTOM_FIELDS_KEY)]

    def create_custom_field(self, seed: CustomFieldSeed) -> CustomField:
        now = self._clock()
        field = CustomField.model_validate(
            {**seed.model_dump(), "id": _new_id("field"), "created_at": now, "updated_at": now}
        )
        with self._lock:
            fields = [CustomField.model_validate(i) for i in self._store.load(CUSTOM_FIELDS_KEY)]
            fields.append(field)
            self._store.save(CUSTOM_FIELDS_KEY, _dump(fields))
        return field

    def delete_custom_field(self, field_id: str) -> bool:
        with self._lock:
            fields = [CustomField.model_validate(i) for i in self._store.load(CUSTOM_FIELDS_KEY)]
            kept = [f for f in fields if f.id != field_id]
            if len(kept) == len(fields):
                return False
            self._store.save(CUSTOM_FIELDS_KEY, _dump(kept))
            return True

    # --- automation rules -------------------------------------------------

    def list_automation_rules(self) -> list[AutomationRule]:
        with self._lock:
            return [
                AutomationRule.model_validate(i) for i in self._store.load(AUTOMATION_RULES_KEY)
            ]

    def create_automation_rule(self, seed: AutomationRuleSeed) -> AutomationRule:
        rule = AutomationRule.model_validate(
            {
                **seed.model_dump(),
                "id": _new_id("rule"),
                "created_at": self._clock(),
                "execution_count": 0,
            }
        )
        with self._lock:
            rules = [
                AutomationRule.model_validate(i) for i in self._store.load(AUTOMATION_RULES_KEY)
            ]
            rules.append(rule)
            self._store.save(AUTOMATION_RULES_KEY, _dump(rules))
        return rule

    def delete_automation_rule(self, rule_id: str) -> bool:
        with self._lock:
            rules = [
                AutomationRule.model_validate(i) for i in self._store.load(AUTOMATION_RULES_KEY)
            ]
            kept = [r for r in rules if r.id != rule_id]
            if len(kept) == len(rules):
                return False
            self._store.save(AUTOMATION_RULES_KEY, _dump(kept))
            return True


class ExecutionHistory:
    """Append-only execution log, bounded to the newest ``limit`` records."""

    def __init__(self, store: KeyValueStore, *, limit: int = 1000) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._store = store
        self._limit = limit
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[WorkflowExecution]:
        return [WorkflowExecution.model_validate(i) for i in self._store.load(EXECUTIONS_KEY)]

    def append(self, execution: WorkflowExecution) -> None:
        with self._lock:
            executions = self._load_unlocked()
            executions.append(execution)
            dropped = len(executions) - self._limit
            if dropped > 0:
                executions = executions[dropped:]
                logger.debug("Pruned execution history", extra={"dropped": dropped})
            self._store.save(EXECUTIONS_KEY, _dump(executions))

    def list(self, workflow_id: str | None = None) -> list[WorkflowExecution]:
        with self._lock:
            executions = self._load_unlocked()
        if workflow_id is None:
            return executions
        return [e for e in executions if e.workflow_id == workflow_id]

    def get(self, execution_id: str) -> WorkflowExecution | None:
        for execution in self.list():
            if execution.id == execution_id:
                return execution
        return None
