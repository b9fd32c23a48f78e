"""CLI entrypoint for the board automation engine.

Every command works against the local state directory (AUTOMATION_STATE_PATH):
workflow definitions, execution history, and the board/user snapshots used by
the local repositories.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime

from pydantic import ValidationError

from board_automation import __version__
from board_automation.engine.config import AutomationSettings
from board_automation.engine.logging import configure_logging
from board_automation.engine.service import AutomationService, TaskNotFound
from board_automation.engine.workflow.models import TRIGGER_TYPES, WorkflowExecution
from board_automation.engine.workflow.orchestrator import SYSTEM_ACTOR, WorkflowNotRunnable

logger = logging.getLogger(__name__)


def _parse_payload(pairs: list[str] | None) -> dict[str, object]:
    """Parse repeated ``key=value`` options; values are JSON when they parse as JSON."""

    payload: dict[str, object] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        try:
            payload[key] = json.loads(raw)
        except json.JSONDecodeError:
            payload[key] = raw
    return payload


def _parse_now(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _format_execution(execution: WorkflowExecution) -> str:
    line = (
        f"{execution.id}\t{execution.workflow_id}\t{execution.status}\t"
        f"{execution.actions_executed}/{execution.total_actions}\t{execution.execution_time}ms"
    )
    if execution.error:
        line += f"\t{execution.error}"
    return line


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="board-automation",
        description="Workflow automation for task boards",
    )
    parser.add_argument("--version", action="version", version=f"board-automation {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("templates", help="List the built-in workflow templates")
    subparsers.add_parser("workflows", help="List stored workflows")

    instantiate = subparsers.add_parser(
        "instantiate", help="Create a workflow from a built-in template"
    )
    instantiate.add_argument("template_id", help="Template id, e.g. 'auto-assign-high-priority'")
    instantiate.add_argument(
        "--created-by", default=SYSTEM_ACTOR, help="User id recorded as the workflow author"
    )

    toggle = subparsers.add_parser("toggle", help="Flip a workflow between active and inactive")
    toggle.add_argument("workflow_id")

    delete = subparsers.add_parser("delete", help="Delete a workflow (its history is kept)")
    delete.add_argument("workflow_id")

    emit = subparsers.add_parser(
        "emit", help="Emit a domain event and run every matching active workflow"
    )
    emit.add_argument(
        "event_type",
        help=f"Event type; known types: {', '.join(sorted(TRIGGER_TYPES))}",
    )
    emit.add_argument(
        "--task", dest="task_id", default=None, help="Id of the task the event concerns"
    )
    emit.add_argument(
        "--board", dest="board_id", default=None, help="Board id (derived from the task)"
    )
    emit.add_argument("--actor", default=SYSTEM_ACTOR, help="User id that caused the event")
    emit.add_argument(
        "--set",
        dest="payload",
        action="append",
        metavar="KEY=VALUE",
        help="Extra event fact for conditions; repeatable (values parsed as JSON when possible)",
    )

    run = subparsers.add_parser("run", help="Run one workflow now (manual trigger)")
    run.add_argument("workflow_id")
    run.add_argument("--task", dest="task_id", default=None, help="Id of the task to run against")
    run.add_argument(
        "--board", dest="board_id", default=None, help="Board id (derived from the task)"
    )
    run.add_argument("--actor", default=SYSTEM_ACTOR, help="User id running the workflow")

    tick = subparsers.add_parser("tick", help="Run the schedule workflows that are due")
    tick.add_argument(
        "--now",
        default=None,
        help="ISO-8601 timestamp to evaluate schedules at (defaults to the current time)",
    )

    executions = subparsers.add_parser("executions", help="Show execution history, newest last")
    executions.add_argument("--workflow-id", default=None, help="Only show runs of this workflow")
    executions.add_argument("--limit", type=int, default=20, help="Number of entries to show")
    executions.add_argument("--logs", action="store_true", help="Include each run's log entries")

    subparsers.add_parser("stats", help="Print aggregate workflow statistics as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AutomationSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, fmt=settings.log_format)

    try:
        service = AutomationService(settings)
    except Exception:
        logger.exception("Could not initialize the automation engine")
        return 1

    try:
        if args.command == "templates":
            for template in service.templates.list_templates():
                print(f"{template.id}\t{template.category}\t{template.name}")
            return 0

        if args.command == "workflows":
            for workflow in service.rules.list():
                state = "active" if workflow.is_active else "inactive"
                print(
                    f"{workflow.id}\t{state}\t{workflow.trigger.type}\t"
                    f"runs={workflow.execution_count}\t{workflow.name}"
                )
            return 0

        if args.command == "instantiate":
            workflow = service.templates.instantiate(args.template_id, created_by=args.created_by)
            if workflow is None:
                print(f"Unknown template: {args.template_id}", file=sys.stderr)
                return 3
            print(f"Created workflow {workflow.id}: {workflow.name}")
            return 0

        if args.command == "toggle":
            if not service.rules.toggle_active(args.workflow_id):
                print(f"Workflow not found: {args.workflow_id}", file=sys.stderr)
                return 3
            workflow = service.rules.get(args.workflow_id)
            state = "active" if workflow is not None and workflow.is_active else "inactive"
            print(f"Workflow {args.workflow_id} is now {state}")
            return 0

        if args.command == "delete":
            if not service.rules.delete(args.workflow_id):
                print(f"Workflow not found: {args.workflow_id}", file=sys.stderr)
                return 3
            print(f"Deleted workflow {args.workflow_id}")
            return 0

        if args.command == "emit":
            event = service.event_for(
                event_type=args.event_type,
                actor_id=args.actor,
                task_id=args.task_id,
                board_id=args.board_id,
                payload=_parse_payload(args.payload),
            )
            results = service.engine.emit(event)
            if not results:
                print(f"No active workflow matches '{args.event_type}'")
            for execution in results:
                print(_format_execution(execution))
            return 0

        if args.command == "run":
            event = service.event_for(
                event_type="manual",
                actor_id=args.actor,
                task_id=args.task_id,
                board_id=args.board_id,
            )
            execution = service.engine.run_manual(
                args.workflow_id,
                actor_id=event.actor_id,
                task=event.task,
                board_id=event.board_id,
            )
            print(_format_execution(execution))
            return 0 if execution.status == "completed" else 4

        if args.command == "tick":
            results = service.engine.run_due_schedules(_parse_now(args.now))
            logger.info("Scheduler tick finished", extra={"executions": len(results)})
            for execution in results:
                print(_format_execution(execution))
            return 0

        if args.command == "executions":
            history = service.history.list(args.workflow_id)
            for execution in history[-args.limit :] if args.limit > 0 else history:
                print(_format_execution(execution))
                if args.logs:
                    for entry in execution.logs:
                        print(f"    [{entry.level}] {entry.message}")
            return 0

        if args.command == "stats":
            print(service.stats().model_dump_json(indent=2))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (WorkflowNotRunnable, TaskNotFound) as e:
        logger.warning(str(e), extra={"command": args.command})
        print(str(e), file=sys.stderr)
        return 3

    except ValueError as e:
        print(f"Invalid argument: {e}", file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1

    finally:
        service.close()


if __name__ == "__main__":
    raise SystemExit(main())
