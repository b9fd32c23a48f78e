"""Automation REST API.

All routes are mounted under `/api`. Handlers are thin: they translate HTTP to
calls on the :class:`AutomationService` stored on ``app.state``.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from board_automation.engine.service import AutomationService, TaskNotFound
from board_automation.engine.workflow.models import (
    AutomationRuleSeed,
    CustomFieldSeed,
    WorkflowSeed,
)
from board_automation.engine.workflow.orchestrator import WorkflowNotRunnable
from board_automation.server.models import (
    EventRequest,
    InstantiateRequest,
    RunRequest,
    WorkflowCreateRequest,
    WorkflowUpdateRequest,
)

router = APIRouter()


def _service(request: Request) -> AutomationService:
    service = getattr(request.app.state, "service", None)
    if not isinstance(service, AutomationService):
        raise HTTPException(status_code=500, detail="Automation service not configured")
    return service


def _workflow_or_404(service: AutomationService, workflow_id: str) -> dict[str, object]:
    workflow = service.rules.get(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow.model_dump(mode="json")


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# --- workflows ------------------------------------------------------------


@router.get("/workflows")
def list_workflows(request: Request) -> list[dict[str, object]]:
    return [w.model_dump(mode="json") for w in _service(request).rules.list()]


@router.get("/workflows/{workflow_id}")
def get_workflow(request: Request, workflow_id: str) -> dict[str, object]:
    return _workflow_or_404(_service(request), workflow_id)


@router.post("/workflows", status_code=201)
def create_workflow(request: Request, payload: WorkflowCreateRequest) -> dict[str, object]:
    seed = WorkflowSeed.model_validate(payload.model_dump(exclude={"created_by"}))
    created = _service(request).rules.create(seed, created_by=payload.created_by)
    return created.model_dump(mode="json")


@router.patch("/workflows/{workflow_id}")
def update_workflow(
    request: Request, workflow_id: str, payload: WorkflowUpdateRequest
) -> dict[str, object]:
    service = _service(request)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not service.rules.update(workflow_id, **changes):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return _workflow_or_404(service, workflow_id)


@router.delete("/workflows/{workflow_id}")
def delete_workflow(request: Request, workflow_id: str) -> dict[str, object]:
    if not _service(request).rules.delete(workflow_id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"ok": True}


@router.post("/workflows/{workflow_id}/toggle")
def toggle_workflow(request: Request, workflow_id: str) -> dict[str, object]:
    service = _service(request)
    if not service.rules.toggle_active(workflow_id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    return _workflow_or_404(service, workflow_id)


@router.post("/workflows/{workflow_id}/run")
def run_workflow(
    request: Request, workflow_id: str, payload: RunRequest | None = None
) -> dict[str, object]:
    service = _service(request)
    payload = payload or RunRequest()
    try:
        event = service.event_for(
            event_type="manual",
            actor_id=payload.actor_id,
            task_id=payload.task_id,
            board_id=payload.board_id,
        )
        execution = service.engine.run_manual(
            workflow_id, actor_id=event.actor_id, task=event.task, board_id=event.board_id
        )
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except WorkflowNotRunnable as e:
        status = 404 if e.reason == "not found" else 409
        raise HTTPException(status_code=status, detail=str(e)) from e
    return execution.model_dump(mode="json")


# --- templates ------------------------------------------------------------


@router.get("/templates")
def list_templates(request: Request) -> list[dict[str, object]]:
    return [t.model_dump(mode="json") for t in _service(request).templates.list_templates()]


@router.post("/templates/{template_id}/instantiate", status_code=201)
def instantiate_template(
    request: Request, template_id: str, payload: InstantiateRequest | None = None
) -> dict[str, object]:
    payload = payload or InstantiateRequest()
    workflow = _service(request).templates.instantiate(template_id, created_by=payload.created_by)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return workflow.model_dump(mode="json")


# --- events & history -----------------------------------------------------


@router.post("/events")
def emit_event(request: Request, payload: EventRequest) -> list[dict[str, object]]:
    service = _service(request)
    try:
        event = service.event_for(
            event_type=payload.type,
            actor_id=payload.actor_id,
            task_id=payload.task_id,
            board_id=payload.board_id,
            payload=payload.payload,
        )
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return [e.model_dump(mode="json") for e in service.engine.emit(event)]


@router.get("/executions")
def list_executions(
    request: Request,
    workflow_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[dict[str, object]]:
    executions = _service(request).history.list(workflow_id)
    # Newest first.
    executions.reverse()
    return [e.model_dump(mode="json") for e in executions[:limit]]


@router.get("/executions/{execution_id}")
def get_execution(request: Request, execution_id: str) -> dict[str, object]:
    execution = _service(request).history.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution.model_dump(mode="json")


@router.get("/stats")
def stats(request: Request) -> dict[str, object]:
    return _service(request).stats().model_dump(mode="json")


# --- custom fields & automation rules -------------------------------------


@router.get("/custom-fields")
def list_custom_fields(request: Request) -> list[dict[str, object]]:
    return [f.model_dump(mode="json") for f in _service(request).rules.list_custom_fields()]


@router.post("/custom-fields", status_code=201)
def create_custom_field(request: Request, payload: CustomFieldSeed) -> dict[str, object]:
    return _service(request).rules.create_custom_field(payload).model_dump(mode="json")


@router.delete("/custom-fields/{field_id}")
def delete_custom_field(request: Request, field_id: str) -> dict[str, object]:
    if not _service(request).rules.delete_custom_field(field_id):
        raise HTTPException(status_code=404, detail="Custom field not found")
    return {"ok": True}


@router.get("/automation-rules")
def list_automation_rules(request: Request) -> list[dict[str, object]]:
    return [r.model_dump(mode="json") for r in _service(request).rules.list_automation_rules()]


@router.post("/automation-rules", status_code=201)
def create_automation_rule(request: Request, payload: AutomationRuleSeed) -> dict[str, object]:
    return _service(request).rules.create_automation_rule(payload).model_dump(mode="json")


@router.delete("/automation-rules/{rule_id}")
def delete_automation_rule(request: Request, rule_id: str) -> dict[str, object]:
    if not _service(request).rules.delete_automation_rule(rule_id):
        raise HTTPException(status_code=404, detail="Automation rule not found")
    return {"ok": True}
