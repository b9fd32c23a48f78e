"""Workflow execution.

One execution moves through ``running -> completed | failed`` exactly once:

- conditions (and trigger filters) not met: ``completed`` with no actions run;
- otherwise every action runs in ascending ``order``; a failed action is
  logged and the next one still runs, so a run with failures still completes;
- an error outside action execution (loading context, persisting counters)
  marks the run ``failed`` and leaves ``execution_count`` untouched.

Runs of the same workflow are serialized by a per-workflow lock, and each action
gets a time budget; running past it counts as a failed action.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime

from board_automation.board.models import Card
from board_automation.engine.workflow.actions import ActionContext, ActionExecutor, ActionResult
from board_automation.engine.workflow.conditions import (
    build_context,
    evaluate,
    trigger_filters_match,
)
from board_automation.engine.workflow.events import DomainEvent
from board_automation.engine.workflow.models import (
    Action,
    ScheduleTrigger,
    UnhandledTrigger,
    Workflow,
    WorkflowExecution,
    utc_now,
)
from board_automation.engine.workflow.schedule import is_due
from board_automation.engine.workflow.store import ExecutionHistory, RuleStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
CONDITIONS_NOT_MET = "Workflow conditions not met, skipping execution"


@dataclass(frozen=True, slots=True)
class WorkflowNotRunnable(Exception):
    """Raised by manual runs of a workflow that is missing or inactive."""

    workflow_id: str
    reason: str

    def __str__(self) -> str:
        return f"Workflow {self.workflow_id} cannot run: {self.reason}"


class WorkflowEngine:
    def __init__(
        self,
        *,
        rules: RuleStore,
        history: ExecutionHistory,
        executor: ActionExecutor,
        action_timeout_seconds: float = 10.0,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.rules = rules
        self.history = history
        self.executor = executor
        self._timeout = action_timeout_seconds
        self._clock = clock
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="workflow-action"
        )
        # An entry drops out once no run holds its lock.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> WorkflowEngine:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    # --- entry points -----------------------------------------------------

    def emit(self, event: DomainEvent) -> list[WorkflowExecution]:
        """Run every active workflow whose trigger type matches the event.

        Never raises: failures end up in the returned execution records.
        """

        try:
            matched = [
                w for w in self.rules.list() if w.is_active and w.trigger.type == event.type
            ]
        except Exception:
            logger.exception("Could not load workflows", extra={"event_type": event.type})
            return []

        logger.info(
            "Event received",
            extra={"event_type": event.type, "actor_id": event.actor_id, "matched": len(matched)},
        )
        return [self.run_workflow(w, event) for w in matched]

    def run_manual(
        self,
        workflow_id: str,
        *,
        actor_id: str,
        task: Card | None = None,
        board_id: str | None = None,
    ) -> WorkflowExecution:
        workflow = self.rules.get(workflow_id)
        if workflow is None:
            raise WorkflowNotRunnable(workflow_id, "not found")
        if not workflow.is_active:
            raise WorkflowNotRunnable(workflow_id, "inactive")
        event = DomainEvent(type="manual", actor_id=actor_id, task=task, board_id=board_id)
        return self.run_workflow(workflow, event)

    def run_due_schedules(self, now: datetime | None = None) -> list[WorkflowExecution]:
        """Scheduler tick: run active ``schedule`` workflows that are due at ``now``."""

        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        executions: list[WorkflowExecution] = []
        for workflow in self.rules.list():
            trigger = workflow.trigger
            if not workflow.is_active or not isinstance(trigger, ScheduleTrigger):
                continue
            since = workflow.last_executed or workflow.created_at
            if not is_due(trigger.config.schedule, now=now, since=since):
                continue
            event = DomainEvent(type="schedule", actor_id=SYSTEM_ACTOR)
            execution = self.run_workflow(workflow, event, at=now)
            if _skipped(execution):
                # Conditions blocked this occurrence; don't fire it again next tick.
                self.rules.update(workflow.id, last_executed=now)
            executions.append(execution)
        return executions

    # --- execution --------------------------------------------------------

    def _lock_for(self, workflow_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(workflow_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[workflow_id] = lock
            return lock

    def run_workflow(
        self, workflow: Workflow, event: DomainEvent, *, at: datetime | None = None
    ) -> WorkflowExecution:
        """Run one workflow for ``event``; ``at`` overrides the clock (scheduler ticks)."""

        with self._lock_for(workflow.id):
            execution = self._run_locked(workflow, event, at or self._clock())
        try:
            self.history.append(execution)
        except Exception:
            logger.exception(
                "Could not persist execution", extra={"execution_id": execution.id}
            )
        return execution

    def _run_locked(
        self, workflow: Workflow, event: DomainEvent, now: datetime
    ) -> WorkflowExecution:
        started = time.monotonic()
        execution = WorkflowExecution(
            workflow_id=workflow.id,
            triggered_by=event.actor_id,
            triggered_at=now,
            total_actions=len(workflow.actions),
        )

        def elapsed_ms() -> int:
            return round((time.monotonic() - started) * 1000)

        if isinstance(workflow.trigger, UnhandledTrigger):
            logger.warning(
                "Unhandled trigger type",
                extra={"workflow_id": workflow.id, "trigger_type": workflow.trigger.type},
            )
            execution.log("warning", f"Trigger {workflow.trigger.type} is not handled")

        try:
            context, column_id = self._resolve(event)
            facts = build_context(
                task=context.task,
                board_id=context.board_id,
                column_id=column_id,
                actor_id=event.actor_id,
                today=now.date(),
                extra=event.payload,
            )
            if not (
                trigger_filters_match(workflow.trigger, facts)
                and evaluate(workflow.conditions, facts)
            ):
                execution.log("info", CONDITIONS_NOT_MET)
                execution.execution_time = elapsed_ms()
                execution.status = "completed"
                return execution

            for action in workflow.ordered_actions():
                result = self._execute_action(action, context)
                self._log_result(execution, action, result)
                if result.ok:
                    execution.actions_executed += 1
                    context = self._refresh(context)

            execution.execution_time = elapsed_ms()
            if not self.rules.record_execution(workflow.id, now):
                logger.warning(
                    "Workflow vanished before its counters were updated",
                    extra={"workflow_id": workflow.id},
                )
            execution.status = "completed"
        except Exception as e:
            logger.exception(
                "Workflow execution failed",
                extra={"workflow_id": workflow.id, "execution_id": execution.id},
            )
            execution.status = "failed"
            execution.error = str(e)
            execution.execution_time = elapsed_ms()
            execution.log("error", f"Workflow execution failed: {e}")
            return execution

        logger.info(
            "Workflow executed",
            extra={
                "workflow_id": workflow.id,
                "execution_id": execution.id,
                "actions_executed": execution.actions_executed,
                "total_actions": execution.total_actions,
            },
        )
        return execution

    def _resolve(self, event: DomainEvent) -> tuple[ActionContext, str | None]:
        task = event.task
        board_id = event.board_id
        column_id: str | None = None
        if task is not None:
            location = self.executor.boards.find_task(task.id)
            if location is not None:
                task = location.card
                board_id = board_id or location.board_id
                column_id = location.column_id
        return ActionContext(actor_id=event.actor_id, task=task, board_id=board_id), column_id

    def _refresh(self, context: ActionContext) -> ActionContext:
        if context.task is None:
            return context
        location = self.executor.boards.find_task(context.task.id)
        if location is None:
            return context
        return ActionContext(
            actor_id=context.actor_id,
            task=location.card,
            board_id=context.board_id or location.board_id,
        )

    def _execute_action(self, action: Action, context: ActionContext) -> ActionResult:
        future = self._pool.submit(self.executor.execute, action, context)
        try:
            return future.result(timeout=self._timeout)
        except TimeoutError:
            future.cancel()
            logger.warning(
                "Action timed out",
                extra={"action_id": action.id, "timeout_seconds": self._timeout},
            )
            return ActionResult(ok=False, message=f"Timed out after {self._timeout:g}s")

    @staticmethod
    def _log_result(execution: WorkflowExecution, action: Action, result: ActionResult) -> None:
        if not result.handled:
            execution.log(
                "warning", f"Action {action.type} is not handled; skipped", action_id=action.id
            )
        elif result.ok:
            execution.log(
                "info",
                f"Action {action.type} executed successfully: {result.message}",
                action_id=action.id,
            )
        else:
            execution.log(
                "error", f"Action {action.type} failed: {result.message}", action_id=action.id
            )


def _skipped(execution: WorkflowExecution) -> bool:
    return any(entry.message == CONDITIONS_NOT_MET for entry in execution.logs)
