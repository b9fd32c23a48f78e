from __future__ import annotations

from dataclasses import dataclass, field

from board_automation.board.models import Card


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """A signal from the task board (or the scheduler) that may fire workflows.

    Events carry facts only. Matching and side effects belong to the engine.
    """

    type: str
    actor_id: str
    task: Card | None = None
    board_id: str | None = None
    payload: dict[str, object] = field(default_factory=dict)
