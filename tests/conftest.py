"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from board_automation.board import (
    Board,
    Card,
    Column,
    InMemoryBoardRepository,
    InMemoryUserDirectory,
    RecordingNotificationSink,
    User,
)
from board_automation.engine.workflow import (
    ActionExecutor,
    ExecutionHistory,
    MemoryStore,
    RuleStore,
    Workflow,
    WorkflowEngine,
    WorkflowSeed,
)

BOARD_ID = "board-1"
TASK_ID = "task-1"


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "automation_state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def state_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rules(state_store: MemoryStore) -> RuleStore:
    return RuleStore(state_store)


@pytest.fixture
def history(state_store: MemoryStore) -> ExecutionHistory:
    return ExecutionHistory(state_store)


@pytest.fixture
def board() -> Board:
    """A three-column board with one unassigned task in 'todo'."""
    return Board(
        id=BOARD_ID,
        title="Product",
        columns=[
            Column(
                id="todo",
                title="To Do",
                position=0,
                cards=[Card(id=TASK_ID, title="Write release notes", priority="Medium")],
            ),
            Column(id="doing", title="In Progress", position=1),
            Column(id="done", title="Done", position=2),
        ],
    )


@pytest.fixture
def boards(board: Board) -> InMemoryBoardRepository:
    return InMemoryBoardRepository([board])


@pytest.fixture
def users() -> InMemoryUserDirectory:
    """Two admins; ``u-admin`` comes first and therefore acts as project manager."""
    return InMemoryUserDirectory(
        [
            User(id="u-dev", name="Dana Developer", email="dana@example.com"),
            User(id="u-admin", name="Alex Admin", email="alex@example.com", role="admin"),
            User(id="u-lead", name="Lee Lead", email="lee@example.com", role="admin"),
        ]
    )


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def executor(
    boards: InMemoryBoardRepository,
    users: InMemoryUserDirectory,
    notifier: RecordingNotificationSink,
) -> ActionExecutor:
    return ActionExecutor(boards=boards, users=users, notifier=notifier)


@pytest.fixture
def engine(
    rules: RuleStore, history: ExecutionHistory, executor: ActionExecutor
) -> Iterator[WorkflowEngine]:
    with WorkflowEngine(rules=rules, history=history, executor=executor) as eng:
        yield eng


@pytest.fixture
def create_workflow(rules: RuleStore) -> Callable[..., Workflow]:
    """Store a workflow built from keyword fields; trigger defaults to task_created."""

    def _create(**fields: Any) -> Workflow:
        data: dict[str, Any] = {
            "name": "Test workflow",
            "trigger": {"type": "task_created", "config": {}},
        }
        data.update(fields)
        return rules.create(WorkflowSeed.model_validate(data), created_by="u-admin")

    return _create
