"""Trigger -> condition -> action workflow automation.

This package introduces first-class types for:
- Domain events that may fire workflows
- Workflow definitions with tagged-union triggers and actions
- A pure condition evaluator
- An action executor working through the board repository
- An execution orchestrator that records an auditable history
"""

from board_automation.engine.workflow.actions import ActionContext, ActionExecutor, ActionResult
from board_automation.engine.workflow.conditions import build_context, evaluate
from board_automation.engine.workflow.events import DomainEvent
from board_automation.engine.workflow.models import Workflow, WorkflowExecution, WorkflowSeed
from board_automation.engine.workflow.orchestrator import WorkflowEngine, WorkflowNotRunnable
from board_automation.engine.workflow.stats import compute_stats
from board_automation.engine.workflow.store import (
    ExecutionHistory,
    JsonFileStore,
    MemoryStore,
    RuleStore,
)
from board_automation.engine.workflow.templates import TemplateCatalog

__all__ = [
    "ActionContext",
    "ActionExecutor",
    "ActionResult",
    "DomainEvent",
    "ExecutionHistory",
    "JsonFileStore",
    "MemoryStore",
    "RuleStore",
    "TemplateCatalog",
    "Workflow",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowNotRunnable",
    "WorkflowSeed",
    "build_context",
    "compute_stats",
    "evaluate",
]
