from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from board_automation.board.models import (
    Activity,
    Board,
    Card,
    Member,
    Subtask,
    find_label_preset,
    new_id,
)
from board_automation.board.repository import BoardRepository, NotificationSink, UserDirectory
from board_automation.engine.workflow.models import (
    Action,
    AddCommentAction,
    AddLabelAction,
    AssignTaskAction,
    CreateSubtaskAction,
    CreateTaskAction,
    MoveTaskAction,
    RemoveLabelAction,
    SendNotificationAction,
    SetDueDateAction,
    SetPriorityAction,
    UnhandledAction,
    utc_now,
)

logger = logging.getLogger(__name__)

PROJECT_MANAGER = "project-manager"
DEFAULT_AVATAR = "👤"


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    message: str
    details: dict[str, object] | None = None
    # False when the action type has no handler and was skipped as a no-op.
    handled: bool = True


@dataclass(frozen=True, slots=True)
class ActionContext:
    """What one action may act on: ids plus a snapshot of the triggering task."""

    actor_id: str
    task: Card | None = None
    board_id: str | None = None


def _fail(message: str) -> ActionResult:
    return ActionResult(ok=False, message=message)


def render_message(template: str, task: Card | None) -> str:
    """Substitute ``{task.title}``, ``{task.priority}`` and ``{task.dueDate}``."""

    if task is None:
        return template
    return (
        template.replace("{task.title}", task.title)
        .replace("{task.priority}", task.priority or "Medium")
        .replace("{task.dueDate}", task.due_date or "No due date")
    )


class ActionExecutor:
    """Apply single workflow actions to board state.

    Every handler returns an :class:`ActionResult`; missing configuration and
    failed lookups are ``ok=False`` results, never exceptions. Board and task
    changes go through the repository's ``update_*`` methods.
    """

    def __init__(
        self,
        *,
        boards: BoardRepository,
        users: UserDirectory,
        notifier: NotificationSink,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.boards = boards
        self.users = users
        self.notifier = notifier
        self._clock = clock
        self._handlers: dict[type, Callable[[object, ActionContext], ActionResult]] = {
            AssignTaskAction: self._assign_task,
            SendNotificationAction: self._send_notification,
            MoveTaskAction: self._move_task,
            SetPriorityAction: self._set_priority,
            AddCommentAction: self._add_comment,
            CreateTaskAction: self._create_task,
            SetDueDateAction: self._set_due_date,
            AddLabelAction: self._add_label,
            RemoveLabelAction: self._remove_label,
            CreateSubtaskAction: self._create_subtask,
        }  # type: ignore[dict-item]

    def execute(self, action: Action, context: ActionContext) -> ActionResult:
        handler = self._handlers.get(type(action))
        if handler is None or isinstance(action, UnhandledAction):
            logger.warning("Unhandled action type skipped", extra={"action_type": action.type})
            return ActionResult(
                ok=True,
                message=f"Action type {action.type!r} is not handled; skipped",
                handled=False,
            )
        try:
            return handler(action, context)
        except Exception as e:
            logger.exception(
                "Action handler raised", extra={"action_id": action.id, "action_type": action.type}
            )
            return _fail(f"{type(e).__name__}: {e}")

    # --- handlers ---------------------------------------------------------

    def _assign_task(self, action: AssignTaskAction, context: ActionContext) -> ActionResult:
        task = context.task
        assignee_id = action.config.assignee_id
        if task is None:
            return _fail("No task in context")
        if not assignee_id:
            return _fail("No assignee configured")

        if assignee_id == PROJECT_MANAGER:
            assignee = self.users.first_admin()
        else:
            assignee = self.users.get_user(assignee_id)
        if assignee is None:
            return _fail(f"Assignee not found: {assignee_id}")

        added = False

        def mutate(card: Card) -> bool:
            nonlocal added
            if card.has_member(assignee.id):
                return False
            card.members.append(
                Member(id=assignee.id, name=assignee.name, avatar=assignee.avatar or DEFAULT_AVATAR)
            )
            added = True
            return True

        if self.boards.update_task(task.id, mutate) is None:
            return _fail(f"Task not found: {task.id}")

        details: dict[str, object] = {"assignee_id": assignee.id}
        if not added:
            message = f"Already assigned to {assignee.name}"
            return ActionResult(ok=True, message=message, details=details)
        logger.info("Task assigned", extra={"task_id": task.id, "assignee_id": assignee.id})
        return ActionResult(ok=True, message=f"Assigned to {assignee.name}", details=details)

    def _send_notification(
        self, action: SendNotificationAction, context: ActionContext
    ) -> ActionResult:
        template = action.config.message
        if not template:
            return _fail("No message configured")

        task = context.task
        if action.config.recipients:
            recipients = list(action.config.recipients)
        elif task is not None:
            recipients = [m.id for m in task.members]
        else:
            recipients = [u.id for u in self.users.admins()]

        message = render_message(template, task)
        sent: list[str] = []
        for user_id in recipients:
            if self.users.get_user(user_id) is None:
                logger.debug("Skipping unknown recipient", extra={"user_id": user_id})
                continue
            self.notifier.notify(user_id, message)
            sent.append(user_id)

        return ActionResult(
            ok=True,
            message=f"Notified {len(sent)} recipient(s)",
            details={"recipients": sent, "message": message},
        )

    def _move_task(self, action: MoveTaskAction, context: ActionContext) -> ActionResult:
        task = context.task
        target_id = action.config.target_column_id
        if task is None:
            return _fail("No task in context")
        if not context.board_id:
            return _fail("No board in context")
        if not target_id:
            return _fail("No target column configured")

        moved: dict[str, object] = {}

        def mutate(board: Board) -> bool:
            source = board.column_of(task.id)
            target = board.column(target_id)
            if source is None or target is None or source.id == target.id:
                return False
            idx = source.index_of(task.id)
            assert idx is not None
            target.cards.append(source.cards.pop(idx))
            moved.update({"from": source.title, "to": target.title})
            return True

        if not self.boards.update_board(context.board_id, mutate):
            return _fail(
                f"Cannot move task {task.id} to column {target_id}: "
                "source or target missing, or already there"
            )
        logger.info("Task moved", extra={"task_id": task.id, **moved})
        return ActionResult(
            ok=True, message=f"Moved from {moved['from']!r} to {moved['to']!r}", details=moved
        )

    def _update_task(
        self, context: ActionContext, mutate: Callable[[Card], bool], message: str
    ) -> ActionResult:
        assert context.task is not None
        if self.boards.update_task(context.task.id, mutate) is None:
            return _fail(f"Task not found: {context.task.id}")
        return ActionResult(ok=True, message=message)

    def _set_priority(self, action: SetPriorityAction, context: ActionContext) -> ActionResult:
        priority = action.config.priority
        if context.task is None or not context.board_id:
            return _fail("set_priority needs a task and a board")
        if priority is None:
            return _fail("No priority configured")

        def mutate(card: Card) -> bool:
            card.priority = priority
            return True

        return self._update_task(context, mutate, f"Priority set to {priority}")

    def _add_comment(self, action: AddCommentAction, context: ActionContext) -> ActionResult:
        if context.task is None or not context.board_id:
            return _fail("add_comment needs a task and a board")
        if not action.config.comment_text:
            return _fail("No comment text configured")
        text = render_message(action.config.comment_text, context.task)

        def mutate(card: Card) -> bool:
            card.activity.append(
                Activity(type="comment", message=f"System added comment: {text}", at=self._clock())
            )
            return True

        return self._update_task(context, mutate, f"Comment added: {text}")

    def _create_task(self, action: CreateTaskAction, context: ActionContext) -> ActionResult:
        config = action.config
        if not context.board_id:
            return _fail("No board in context")
        if not config.task_title:
            return _fail("No task title configured")

        card = Card(
            id=new_id("task"),
            title=config.task_title,
            description=config.task_description,
            priority=config.task_priority,
            activity=[
                Activity(
                    type="created", message="Task created by workflow automation", at=self._clock()
                )
            ],
        )

        def mutate(board: Board) -> bool:
            if not board.columns:
                return False
            board.columns[0].cards.append(card)
            return True

        if not self.boards.update_board(context.board_id, mutate):
            return _fail(f"Board {context.board_id} not found or has no columns")
        logger.info("Task created", extra={"task_id": card.id, "board_id": context.board_id})
        return ActionResult(
            ok=True, message=f"Task created: {card.title}", details={"task_id": card.id}
        )

    def _set_due_date(self, action: SetDueDateAction, context: ActionContext) -> ActionResult:
        config = action.config
        if context.task is None:
            return _fail("No task in context")
        if config.specific_date:
            due = config.specific_date
        elif config.due_date_offset is not None:
            due = (self._clock() + timedelta(days=config.due_date_offset)).date().isoformat()
        else:
            return _fail("No due date configured")

        def mutate(card: Card) -> bool:
            card.due_date = due
            card.activity.append(
                Activity(type="dueDate", message=f"Due date set to {due}", at=self._clock())
            )
            return True

        return self._update_task(context, mutate, f"Due date set to {due}")

    def _add_label(self, action: AddLabelAction, context: ActionContext) -> ActionResult:
        if context.task is None:
            return _fail("No task in context")
        label_id = action.config.label_id
        label = find_label_preset(label_id) if label_id else None
        if label is None:
            return _fail(f"Label not found: {label_id}")

        def mutate(card: Card) -> bool:
            if any(existing.id == label.id for existing in card.labels):
                return False
            card.labels.append(label)
            return True

        return self._update_task(context, mutate, f"Label {label.name!r} applied")

    def _remove_label(self, action: RemoveLabelAction, context: ActionContext) -> ActionResult:
        label_id = action.config.label_id
        if context.task is None:
            return _fail("No task in context")
        if not label_id:
            return _fail("No label configured")

        def mutate(card: Card) -> bool:
            kept = [label for label in card.labels if label.id != label_id]
            if len(kept) == len(card.labels):
                return False
            card.labels = kept
            return True

        return self._update_task(context, mutate, f"Label {label_id!r} removed")

    def _create_subtask(self, action: CreateSubtaskAction, context: ActionContext) -> ActionResult:
        title = action.config.task_title
        if context.task is None:
            return _fail("No task in context")
        if not title:
            return _fail("No subtask title configured")

        def mutate(card: Card) -> bool:
            card.subtasks.append(Subtask(title=title))
            return True

        return self._update_task(context, mutate, f"Subtask added: {title}")
