from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Header, HTTPException

from review_gateway.dependencies import get_workflow
from review_gateway.schemas.workflow import ManualTriggerRequest, WorkflowResult
from review_gateway.services.workflow_service import WorkflowService

router = APIRouter()

HANDLED_ACTIONS = {"opened", "reopened", "ready_for_review", "synchronize"}

@router.post("/webhooks/github", response_model=WorkflowResult, response_model_exclude_none=True)
def github_webhook(payload: Dict[str, Any] = Body(...),
                   x_github_event: Optional[str] = Header(default=None),
                   workflow: WorkflowService = Depends(get_workflow)):
    if x_github_event and x_github_event != "pull_request":
        return WorkflowResult(success=True, reason=f"Ignored event {x_github_event}")
    if payload.get("action") not in HANDLED_ACTIONS:
        return WorkflowResult(success=True, reason=f"Ignored action {payload.get('action')}")

    result = workflow.process_webhook_workflow(payload)
    if not result.success:
        raise HTTPException(400, result.error)
    return result

@router.post("/reviews/manual", status_code=202, response_model=WorkflowResult, response_model_exclude_none=True)
def manual_review(req: ManualTriggerRequest, workflow: WorkflowService = Depends(get_workflow)):
    result = workflow.process_manual_analysis_workflow(req)
    if not result.success:
        raise HTTPException(400, result.error)
    return result

@router.get("/workflow/status")
def workflow_status(workflow: WorkflowService = Depends(get_workflow)):
    return workflow.get_workflow_status()
