"""Collaborator interfaces consumed by the automation engine.

The board application owns boards, users and notification delivery. The engine
only talks to them through the protocols below, addressing records by id and
applying mutations through ``update_*`` callbacks so the repository can hold a
single writer lock around every read-modify-write.

The in-memory implementations are what the CLI, the REST adapter and the tests
run against. They optionally persist a JSON snapshot after every mutation.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from board_automation.board.models import Board, Card, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskLocation:
    """Where a task currently lives, with a detached copy of the card."""

    board_id: str
    column_id: str
    card: Card


class BoardRepository(Protocol):
    def list_boards(self) -> list[Board]: ...

    def get_board(self, board_id: str) -> Board | None: ...

    def find_task(self, task_id: str) -> TaskLocation | None: ...

    def update_task(self, task_id: str, mutate: Callable[[Card], bool]) -> Card | None:
        """Apply ``mutate`` to the stored task.

        ``mutate`` returns True when it changed the card; only then is the change
        committed. Returns the card as stored afterwards, or None when the task is
        unknown.
        """
        ...

    def update_board(self, board_id: str, mutate: Callable[[Board], bool]) -> bool:
        """Apply ``mutate`` to the stored board; commit and return True if it did."""
        ...


class UserDirectory(Protocol):
    def get_user(self, user_id: str) -> User | None: ...

    def list_users(self) -> list[User]: ...

    def admins(self) -> list[User]: ...

    def first_admin(self) -> User | None: ...


class NotificationSink(Protocol):
    def notify(self, user_id: str, message: str) -> None: ...


def _load_json_list(path: Path) -> list[dict[str, object]]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("State file is not valid JSON; treating as empty", extra={"path": str(path)})
        return []
    if not isinstance(raw, list):
        logger.warning(
            "State file has unexpected shape; treating as empty", extra={"path": str(path)}
        )
        return []
    return [item for item in raw if isinstance(item, dict)]


class InMemoryBoardRepository:
    """Board repository guarded by one writer lock.

    Mutations are applied to a deep copy of the board and swapped in only when
    the callback reports a change, so a callback that fails halfway leaves the
    stored board untouched.
    """

    def __init__(self, boards: Iterable[Board] = (), *, path: Path | None = None) -> None:
        self._boards: list[Board] = [b.model_copy(deep=True) for b in boards]
        self._path = path
        self._lock = threading.RLock()

    @classmethod
    def from_file(cls, path: Path) -> InMemoryBoardRepository:
        boards = [Board.model_validate(item) for item in _load_json_list(path)]
        return cls(boards, path=path)

    def _save_unlocked(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [b.model_dump(mode="json") for b in self._boards]
        self._path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def _index_unlocked(self, board_id: str) -> int | None:
        for idx, board in enumerate(self._boards):
            if board.id == board_id:
                return idx
        return None

    def list_boards(self) -> list[Board]:
        with self._lock:
            return [b.model_copy(deep=True) for b in self._boards]

    def get_board(self, board_id: str) -> Board | None:
        with self._lock:
            idx = self._index_unlocked(board_id)
            if idx is None:
                return None
            return self._boards[idx].model_copy(deep=True)

    def add_board(self, board: Board) -> None:
        with self._lock:
            idx = self._index_unlocked(board.id)
            if idx is None:
                self._boards.append(board.model_copy(deep=True))
            else:
                self._boards[idx] = board.model_copy(deep=True)
            self._save_unlocked()

    def find_task(self, task_id: str) -> TaskLocation | None:
        with self._lock:
            for board in self._boards:
                column = board.column_of(task_id)
                if column is None:
                    continue
                idx = column.index_of(task_id)
                assert idx is not None
                return TaskLocation(
                    board_id=board.id,
                    column_id=column.id,
                    card=column.cards[idx].model_copy(deep=True),
                )
            return None

    def update_task(self, task_id: str, mutate: Callable[[Card], bool]) -> Card | None:
        with self._lock:
            for board_idx, board in enumerate(self._boards):
                column = board.column_of(task_id)
                if column is None:
                    continue
                card_idx = column.index_of(task_id)
                assert card_idx is not None
                working = board.model_copy(deep=True)
                working_column = working.column(column.id)
                assert working_column is not None
                card = working_column.cards[card_idx]
                if not mutate(card):
                    return column.cards[card_idx].model_copy(deep=True)
                self._boards[board_idx] = working
                self._save_unlocked()
                return card.model_copy(deep=True)
            return None

    def update_board(self, board_id: str, mutate: Callable[[Board], bool]) -> bool:
        with self._lock:
            idx = self._index_unlocked(board_id)
            if idx is None:
                return False
            working = self._boards[idx].model_copy(deep=True)
            if not mutate(working):
                return False
            self._boards[idx] = working
            self._save_unlocked()
            return True


class InMemoryUserDirectory:
    """User directory backed by a list.

    The list order is the tie-break for :meth:`first_admin`: the first admin
    in the order users were loaded wins.
    """

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users: list[User] = list(users)

    @classmethod
    def from_file(cls, path: Path) -> InMemoryUserDirectory:
        return cls(User.model_validate(item) for item in _load_json_list(path))

    def get_user(self, user_id: str) -> User | None:
        for user in self._users:
            if user.id == user_id:
                return user
        return None

    def list_users(self) -> list[User]:
        return list(self._users)

    def admins(self) -> list[User]:
        return [u for u in self._users if u.is_admin]

    def first_admin(self) -> User | None:
        admins = self.admins()
        return admins[0] if admins else None


class LoggingNotificationSink:
    """Deliver notifications to the log (fire-and-forget)."""

    def notify(self, user_id: str, message: str) -> None:
        logger.info("Notification", extra={"user_id": user_id, "notification": message})


@dataclass(frozen=True, slots=True)
class SentNotification:
    user_id: str
    message: str


class RecordingNotificationSink:
    """Keep every notification in memory; handy for the REST adapter and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[SentNotification] = []

    def notify(self, user_id: str, message: str) -> None:
        with self._lock:
            self.sent.append(SentNotification(user_id=user_id, message=message))
