"""Task board records and the collaborator interfaces the engine consumes."""

from board_automation.board.models import Board, Card, Column, Member, User
from board_automation.board.repository import (
    BoardRepository,
    InMemoryBoardRepository,
    InMemoryUserDirectory,
    LoggingNotificationSink,
    NotificationSink,
    RecordingNotificationSink,
    UserDirectory,
)

__all__ = [
    "Board",
    "BoardRepository",
    "Card",
    "Column",
    "InMemoryBoardRepository",
    "InMemoryUserDirectory",
    "LoggingNotificationSink",
    "Member",
    "NotificationSink",
    "RecordingNotificationSink",
    "User",
    "UserDirectory",
]
