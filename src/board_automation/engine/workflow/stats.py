from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from board_automation.engine.workflow.models import Workflow, WorkflowExecution, WorkflowStats

DEFAULT_TRIGGER = "task_created"
DEFAULT_ACTION = "move_task"


def _most_common(counts: Counter[str], default: str) -> str:
    # Counter.most_common keeps first-seen order among ties.
    top = counts.most_common(1)
    return top[0][0] if top else default


def compute_stats(
    workflows: Sequence[Workflow], executions: Sequence[WorkflowExecution]
) -> WorkflowStats:
    """Aggregate counters over the current workflows and execution history."""

    times = [e.execution_time for e in executions if e.execution_time]
    average = round(sum(times) / len(times)) if times else 0

    trigger_counts: Counter[str] = Counter(w.trigger.type for w in workflows)
    action_counts: Counter[str] = Counter(a.type for w in workflows for a in w.actions)

    return WorkflowStats(
        total_workflows=len(workflows),
        active_workflows=sum(1 for w in workflows if w.is_active),
        total_executions=len(executions),
        successful_executions=sum(1 for e in executions if e.status == "completed"),
        failed_executions=sum(1 for e in executions if e.status == "failed"),
        average_execution_time=average,
        most_used_trigger=_most_common(trigger_counts, DEFAULT_TRIGGER),
        most_used_action=_most_common(action_counts, DEFAULT_ACTION),
    )
