"""Wiring of the automation engine components."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from board_automation.board.repository import (
    BoardRepository,
    InMemoryBoardRepository,
    InMemoryUserDirectory,
    LoggingNotificationSink,
    NotificationSink,
    UserDirectory,
)
from board_automation.engine.config import AutomationSettings
from board_automation.engine.workflow.actions import ActionExecutor
from board_automation.engine.workflow.events import DomainEvent
from board_automation.engine.workflow.models import WorkflowStats
from board_automation.engine.workflow.orchestrator import WorkflowEngine
from board_automation.engine.workflow.stats import compute_stats
from board_automation.engine.workflow.store import (
    ExecutionHistory,
    JsonFileStore,
    KeyValueStore,
    RuleStore,
)
from board_automation.engine.workflow.templates import TemplateCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskNotFound(Exception):
    """Raised when an event names a task the board repository does not know."""

    task_id: str

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


class AutomationService:
    """Everything the CLI and the REST adapter need, built from settings.

    Collaborators default to the local JSON-backed implementations; pass your
    own to plug the engine into a different board backend.
    """

    def __init__(
        self,
        settings: AutomationSettings | None = None,
        *,
        store: KeyValueStore | None = None,
        boards: BoardRepository | None = None,
        users: UserDirectory | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        self.settings = settings or AutomationSettings()

        self.store: KeyValueStore = store or JsonFileStore(self.settings.state_path)
        self.boards: BoardRepository = boards or InMemoryBoardRepository.from_file(
            self.settings.boards_state_file
        )
        self.users: UserDirectory = users or InMemoryUserDirectory.from_file(
            self.settings.users_state_file
        )
        self.notifier: NotificationSink = notifier or LoggingNotificationSink()

        self.rules = RuleStore(self.store)
        self.history = ExecutionHistory(self.store, limit=self.settings.execution_history_limit)
        self.templates = TemplateCatalog(self.rules)
        self.executor = ActionExecutor(
            boards=self.boards, users=self.users, notifier=self.notifier
        )
        self.engine = WorkflowEngine(
            rules=self.rules,
            history=self.history,
            executor=self.executor,
            action_timeout_seconds=self.settings.action_timeout_seconds,
        )

        logger.debug(
            "Automation service initialized",
            extra={"state_path": str(self.settings.state_path)},
        )

    def stats(self) -> WorkflowStats:
        return compute_stats(self.rules.list(), self.history.list())

    def event_for(
        self,
        *,
        event_type: str,
        actor_id: str,
        task_id: str | None = None,
        board_id: str | None = None,
        payload: dict[str, object] | None = None,
    ) -> DomainEvent:
        """Build a domain event, looking the task up by id.

        Raises:
            TaskNotFound: ``task_id`` is set but no board holds that task.
        """

        task = None
        if task_id:
            location = self.boards.find_task(task_id)
            if location is None:
                raise TaskNotFound(task_id)
            task = location.card
            board_id = board_id or location.board_id
        return DomainEvent(
            type=event_type,
            actor_id=actor_id,
            task=task,
            board_id=board_id,
            payload=payload or {},
        )

    def close(self) -> None:
        self.engine.close()
