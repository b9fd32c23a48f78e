#!/usr/bin/env python3
"""Programmatic automation example.

This demonstrates using the engine components directly:

* build a board and a user directory in memory
* create a workflow from the "auto-assign-high-priority" template
* emit a `task_created` event and print the execution log

Nothing is written to disk: workflows and history live in a MemoryStore.
"""

from __future__ import annotations

import argparse
from typing import Sequence

from board_automation.board import (
    Board,
    Card,
    Column,
    InMemoryBoardRepository,
    InMemoryUserDirectory,
    RecordingNotificationSink,
    User,
)
from board_automation.engine.config import AutomationSettings
from board_automation.engine.logging import configure_logging
from board_automation.engine.service import AutomationService
from board_automation.engine.workflow import MemoryStore


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a template workflow against a demo board.")
    parser.add_argument("--title", default="Fix login outage", help="Title of the new task")
    parser.add_argument(
        "--priority",
        default="High",
        choices=["Low", "Medium", "High"],
        help="Priority of the new task (only High fires the template)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = AutomationSettings()
    configure_logging(settings.log_level, fmt="text")

    card = Card(id="task-1", title=args.title, priority=args.priority)
    board = Board(
        id="board-1",
        title="Operations",
        columns=[
            Column(id="todo", title="To Do", position=0, cards=[card]),
            Column(id="doing", title="In Progress", position=1),
            Column(id="done", title="Done", position=2),
        ],
    )
    users = InMemoryUserDirectory(
        [
            User(id="u-admin", name="Alice Admin", email="alice@example.com", role="admin"),
            User(id="u-dev", name="Dan Developer", email="dan@example.com"),
        ]
    )
    notifier = RecordingNotificationSink()

    service = AutomationService(
        settings,
        store=MemoryStore(),
        boards=InMemoryBoardRepository([board]),
        users=users,
        notifier=notifier,
    )
    try:
        workflow = service.templates.instantiate("auto-assign-high-priority", created_by="u-admin")
        if workflow is None:
            print("Template not found")
            return 1

        event = service.event_for(event_type="task_created", actor_id="u-dev", task_id=card.id)
        for execution in service.engine.emit(event):
            print(f"{execution.status}: {execution.actions_executed}/{execution.total_actions}")
            for entry in execution.logs:
                print(f"  [{entry.level}] {entry.message}")

        for sent in notifier.sent:
            print(f"notified {sent.user_id}: {sent.message}")
    finally:
        service.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
