"""Unit tests for workflow execution."""

from __future__ import annotations

import gc
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from board_automation.board import (
    InMemoryBoardRepository,
    InMemoryUserDirectory,
    RecordingNotificationSink,
)
from board_automation.board.models import Card
from board_automation.engine.workflow import (
    ActionExecutor,
    ActionResult,
    DomainEvent,
    ExecutionHistory,
    MemoryStore,
    RuleStore,
    TemplateCatalog,
    Workflow,
    WorkflowEngine,
    WorkflowNotRunnable,
)
from board_automation.engine.workflow.orchestrator import CONDITIONS_NOT_MET

TASK_ID = "task-1"


def _task(boards: InMemoryBoardRepository) -> Card:
    location = boards.find_task(TASK_ID)
    assert location is not None
    return location.card


def _event(boards: InMemoryBoardRepository, event_type: str = "task_created") -> DomainEvent:
    return DomainEvent(type=event_type, actor_id="u-dev", task=_task(boards))


def _make_high_priority(boards: InMemoryBoardRepository) -> None:
    def mutate(card: Card) -> bool:
        card.priority = "High"
        return True

    assert boards.update_task(TASK_ID, mutate) is not None


def test_inactive_workflow_never_runs(
    engine: WorkflowEngine,
    rules: RuleStore,
    history: ExecutionHistory,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    workflow = create_workflow(
        is_active=False,
        actions=[{"type": "set_priority", "config": {"priority": "High"}}],
    )

    results = engine.emit(_event(boards))

    assert results == []
    assert history.list() == []
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 0
    assert _task(boards).priority == "Medium"


def test_only_matching_trigger_types_run(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    created = create_workflow(trigger={"type": "task_created", "config": {}})
    create_workflow(trigger={"type": "task_completed", "config": {}})

    results = engine.emit(_event(boards, "task_created"))

    assert [e.workflow_id for e in results] == [created.id]


def test_actions_run_in_ascending_order(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    create_workflow(
        actions=[
            {"id": "third", "type": "add_comment", "config": {"comment_text": "3"}, "order": 3},
            {"id": "first", "type": "add_comment", "config": {"comment_text": "1"}, "order": 1},
            {"id": "second", "type": "add_comment", "config": {"comment_text": "2"}, "order": 2},
        ]
    )

    [execution] = engine.emit(_event(boards))

    assert [entry.action_id for entry in execution.logs] == ["first", "second", "third"]
    assert [a.message for a in _task(boards).activity] == [
        "System added comment: 1",
        "System added comment: 2",
        "System added comment: 3",
    ]


def test_failing_action_does_not_stop_later_actions(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    # move_task to the column the task is already in fails; set_priority still runs.
    workflow = create_workflow(
        actions=[
            {"type": "move_task", "config": {"target_column_id": "todo"}, "order": 1},
            {"type": "set_priority", "config": {"priority": "High"}, "order": 2},
        ]
    )

    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"
    assert execution.total_actions == 2
    assert execution.actions_executed == 1
    assert [entry.level for entry in execution.logs] == ["error", "info"]
    assert execution.logs[0].message.startswith("Action move_task failed:")
    assert execution.logs[1].message.startswith("Action set_priority executed successfully:")

    location = boards.find_task(TASK_ID)
    assert location is not None
    assert location.column_id == "todo"
    assert location.card.priority == "High"

    stored = rules.get(workflow.id)
    assert stored is not None
    assert stored.execution_count == 1
    assert stored.last_executed is not None


def test_high_priority_task_is_assigned_and_notified(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    notifier: RecordingNotificationSink,
) -> None:
    workflow = TemplateCatalog(rules).instantiate("auto-assign-high-priority", created_by="u-admin")
    assert workflow is not None
    _make_high_priority(boards)

    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"
    assert execution.actions_executed == 2
    assert [m.id for m in _task(boards).members] == ["u-admin"]
    assert [(n.user_id, n.message) for n in notifier.sent] == [
        ("u-admin", "A high priority task was assigned to you: Write release notes")
    ]
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 1


def test_trigger_filter_mismatch_skips_without_counting(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    notifier: RecordingNotificationSink,
) -> None:
    workflow = TemplateCatalog(rules).instantiate("auto-assign-high-priority", created_by="u-admin")
    assert workflow is not None

    # The task is Medium priority.
    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"
    assert execution.actions_executed == 0
    assert [(e.level, e.message) for e in execution.logs] == [("info", CONDITIONS_NOT_MET)]
    assert _task(boards).members == []
    assert notifier.sent == []
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 0


def test_conditions_not_met(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    create_workflow(
        conditions=[{"field": "title", "operator": "contains", "value": "outage"}],
        actions=[{"type": "set_priority", "config": {"priority": "High"}}],
    )

    [execution] = engine.emit(_event(boards))

    assert execution.actions_executed == 0
    assert execution.logs[0].message == CONDITIONS_NOT_MET
    assert _task(boards).priority == "Medium"


def test_unhandled_action_is_logged_as_warning(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    create_workflow(
        actions=[{"id": "a-1", "type": "post_to_slack", "config": {"channel": "#ops"}}]
    )

    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"
    assert execution.actions_executed == 1
    [entry] = execution.logs
    assert entry.level == "warning"
    assert entry.action_id == "a-1"
    assert "post_to_slack" in entry.message


def test_store_failure_marks_execution_failed(
    engine: WorkflowEngine,
    rules: RuleStore,
    history: ExecutionHistory,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    workflow = create_workflow(actions=[{"type": "set_priority", "config": {"priority": "Low"}}])

    def broken(*_args: object, **_kwargs: object) -> bool:
        raise OSError("disk full")

    monkeypatch.setattr(rules, "record_execution", broken)

    [execution] = engine.emit(_event(boards))

    assert execution.status == "failed"
    assert execution.error == "disk full"
    assert execution.logs[-1].level == "error"
    assert execution.logs[-1].message == "Workflow execution failed: disk full"
    assert execution.execution_time is not None

    monkeypatch.undo()
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 0
    assert [e.status for e in history.list()] == ["failed"]


def test_emit_survives_unreadable_rules(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken() -> list[Workflow]:
        raise OSError("state unreadable")

    monkeypatch.setattr(rules, "list", broken)

    assert engine.emit(_event(boards)) == []


def test_history_failure_still_returns_execution(
    engine: WorkflowEngine,
    history: ExecutionHistory,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    create_workflow()

    def broken(_execution: object) -> None:
        raise OSError("history unavailable")

    monkeypatch.setattr(history, "append", broken)

    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"


def test_action_timeout_is_a_failed_action(
    rules: RuleStore,
    history: ExecutionHistory,
    executor: ActionExecutor,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    release = threading.Event()
    original = executor.execute

    def slow_comments(action, context):  # type: ignore[no-untyped-def]
        if action.type == "add_comment":
            release.wait(5)
            return ActionResult(ok=True, message="late")
        return original(action, context)

    monkeypatch.setattr(executor, "execute", slow_comments)
    create_workflow(
        actions=[
            {"type": "add_comment", "config": {"comment_text": "slow"}, "order": 1},
            {"type": "set_priority", "config": {"priority": "High"}, "order": 2},
        ]
    )

    engine = WorkflowEngine(
        rules=rules, history=history, executor=executor, action_timeout_seconds=0.05
    )
    try:
        [execution] = engine.emit(_event(boards))
    finally:
        release.set()
        engine.close()

    assert execution.status == "completed"
    assert execution.actions_executed == 1
    assert execution.logs[0].level == "error"
    assert "Timed out after 0.05s" in execution.logs[0].message
    assert _task(boards).priority == "High"


def test_run_manual_rejects_missing_and_inactive(
    engine: WorkflowEngine, create_workflow: Callable[..., Workflow]
) -> None:
    inactive = create_workflow(is_active=False, trigger={"type": "manual"})

    with pytest.raises(WorkflowNotRunnable) as missing:
        engine.run_manual("workflow-missing", actor_id="u-dev")
    assert missing.value.reason == "not found"

    with pytest.raises(WorkflowNotRunnable) as off:
        engine.run_manual(inactive.id, actor_id="u-dev")
    assert off.value.reason == "inactive"


def test_run_manual_runs_against_task(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    workflow = create_workflow(
        trigger={"type": "manual"},
        actions=[{"type": "move_task", "config": {"target_column_id": "doing"}}],
    )

    execution = engine.run_manual(workflow.id, actor_id="u-dev", task=_task(boards))

    assert execution.status == "completed"
    assert execution.triggered_by == "u-dev"
    location = boards.find_task(TASK_ID)
    assert location is not None and location.column_id == "doing"
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 1


def test_concurrent_runs_of_one_workflow_are_all_counted(
    engine: WorkflowEngine,
    rules: RuleStore,
    history: ExecutionHistory,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    workflow = create_workflow(actions=[{"type": "add_comment", "config": {"comment_text": "x"}}])
    event = _event(boards)

    threads = [threading.Thread(target=engine.emit, args=(event,)) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 5
    assert len(history.list(workflow.id)) == 5
    assert len(_task(boards).activity) == 5


def test_due_schedules_fire_once_per_occurrence(
    boards: InMemoryBoardRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotificationSink,
) -> None:
    created = datetime(2025, 1, 1, 8, 0, tzinfo=UTC)
    now = {"value": datetime(2025, 1, 1, 9, 30, tzinfo=UTC)}

    store = MemoryStore()
    rules = RuleStore(store, clock=lambda: created)
    history = ExecutionHistory(store)
    executor = ActionExecutor(boards=boards, users=users, notifier=notifier)
    workflow = TemplateCatalog(rules).instantiate("overdue-reminder", created_by="u-admin")
    assert workflow is not None

    with WorkflowEngine(
        rules=rules, history=history, executor=executor, clock=lambda: now["value"]
    ) as engine:
        first = engine.run_due_schedules()
        again = engine.run_due_schedules()
        now["value"] += timedelta(days=1)
        next_day = engine.run_due_schedules()

    assert [e.workflow_id for e in first] == [workflow.id]
    assert again == []
    assert [e.workflow_id for e in next_day] == [workflow.id]
    # No task in context: the reminder goes to every admin, once per run.
    assert [n.user_id for n in notifier.sent] == ["u-admin", "u-lead", "u-admin", "u-lead"]


def test_schedule_not_due_before_first_occurrence(
    boards: InMemoryBoardRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotificationSink,
) -> None:
    created = datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
    store = MemoryStore()
    rules = RuleStore(store, clock=lambda: created)
    executor = ActionExecutor(boards=boards, users=users, notifier=notifier)
    TemplateCatalog(rules).instantiate("overdue-reminder", created_by="u-admin")

    with WorkflowEngine(rules=rules, history=ExecutionHistory(store), executor=executor) as engine:
        # 09:00 on the creation day already passed when the workflow was created.
        assert engine.run_due_schedules(datetime(2025, 1, 1, 23, 0, tzinfo=UTC)) == []
        assert len(engine.run_due_schedules(datetime(2025, 1, 2, 9, 0, tzinfo=UTC))) == 1


def test_move_without_target_column_fails_and_next_action_runs(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    create_workflow(
        actions=[
            {"type": "move_task", "config": {}, "order": 1},
            {"type": "set_priority", "config": {"priority": "High"}, "order": 2},
        ]
    )

    [execution] = engine.emit(_event(boards))

    assert execution.status == "completed"
    assert execution.actions_executed == 1
    assert [entry.level for entry in execution.logs] == ["error", "info"]
    assert execution.logs[0].message == "Action move_task failed: No target column configured"
    location = boards.find_task(TASK_ID)
    assert location is not None
    assert location.column_id == "todo"
    assert location.card.priority == "High"


def test_priority_condition_gates_project_manager_assignment(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    workflow = create_workflow(
        conditions=[{"field": "priority", "operator": "equals", "value": "High"}],
        actions=[{"type": "assign_task", "config": {"assignee_id": "project-manager"}}],
    )

    [medium] = engine.emit(_event(boards))

    assert medium.status == "completed"
    assert medium.actions_executed == 0
    assert _task(boards).members == []

    _make_high_priority(boards)
    [high] = engine.emit(_event(boards))

    assert high.status == "completed"
    assert high.actions_executed == 1
    assert [m.id for m in _task(boards).members] == ["u-admin"]
    stored = rules.get(workflow.id)
    assert stored is not None and stored.execution_count == 1


def test_unknown_trigger_type_runs_with_a_warning_entry(
    engine: WorkflowEngine,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    create_workflow(
        trigger={"type": "webhook_received", "config": {"url": "/hook"}},
        actions=[{"type": "add_comment", "config": {"comment_text": "hooked"}}],
    )

    [execution] = engine.emit(_event(boards, "webhook_received"))

    assert execution.status == "completed"
    assert execution.actions_executed == 1
    assert [(entry.level, entry.message) for entry in execution.logs][0] == (
        "warning",
        "Trigger webhook_received is not handled",
    )
    assert _task(boards).activity[-1].message == "System added comment: hooked"


def test_schedule_tick_stamps_runs_with_the_tick_time(
    boards: InMemoryBoardRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotificationSink,
) -> None:
    created = datetime(2025, 1, 1, 8, 0, tzinfo=UTC)
    store = MemoryStore()
    rules = RuleStore(store, clock=lambda: created)
    executor = ActionExecutor(boards=boards, users=users, notifier=notifier)
    workflow = TemplateCatalog(rules).instantiate("overdue-reminder", created_by="u-admin")
    assert workflow is not None
    tick = datetime(2025, 1, 1, 9, 30, tzinfo=UTC)

    with WorkflowEngine(rules=rules, history=ExecutionHistory(store), executor=executor) as engine:
        [execution] = engine.run_due_schedules(tick)

    assert execution.triggered_at == tick
    stored = rules.get(workflow.id)
    assert stored is not None
    assert stored.last_executed == tick
    assert stored.execution_count == 1


def test_naive_tick_time_is_treated_as_utc(
    boards: InMemoryBoardRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotificationSink,
) -> None:
    created = datetime(2025, 1, 1, 8, 0, tzinfo=UTC)
    store = MemoryStore()
    rules = RuleStore(store, clock=lambda: created)
    executor = ActionExecutor(boards=boards, users=users, notifier=notifier)
    workflow = TemplateCatalog(rules).instantiate("overdue-reminder", created_by="u-admin")
    assert workflow is not None

    with WorkflowEngine(rules=rules, history=ExecutionHistory(store), executor=executor) as engine:
        assert engine.run_due_schedules(datetime(2025, 1, 1, 8, 30)) == []
        [execution] = engine.run_due_schedules(datetime(2025, 1, 1, 9, 30))

    assert execution.workflow_id == workflow.id
    stored = rules.get(workflow.id)
    assert stored is not None
    assert stored.last_executed == datetime(2025, 1, 1, 9, 30, tzinfo=UTC)


def test_workflow_locks_are_released_after_runs(
    engine: WorkflowEngine,
    rules: RuleStore,
    boards: InMemoryBoardRepository,
    create_workflow: Callable[..., Workflow],
) -> None:
    workflow = create_workflow(actions=[{"type": "add_comment", "config": {"comment_text": "x"}}])

    engine.emit(_event(boards))
    rules.delete(workflow.id)
    gc.collect()

    assert workflow.id not in engine._locks
