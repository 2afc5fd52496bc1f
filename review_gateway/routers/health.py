from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from review_gateway.dependencies import get_workflow
from review_gateway.services.workflow_service import WorkflowService

router = APIRouter()

@router.get("/health")
def health():
    return {"ok": True}

@router.get("/health/workflow")
def health_workflow(workflow: WorkflowService = Depends(get_workflow)):
    report = workflow.health_check()
    return JSONResponse(report.model_dump(exclude_none=True), status_code=200 if report.healthy else 503)

@router.get("/health/services")
def health_services(workflow: WorkflowService = Depends(get_workflow)):
    analyzer = workflow.analyzer
    if not hasattr(analyzer, "health"):
        return {"review_service": {"ok": analyzer is not None}}
    return {"review_service": analyzer.health()}
