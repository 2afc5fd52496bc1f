from fastapi import Request
from review_gateway.services.workflow_service import WorkflowService
from review_worker.queue import JobQueueService

def get_workflow(request: Request) -> WorkflowService:
    return request.app.state.workflow

def get_queue(request: Request) -> JobQueueService:
    return request.app.state.workflow.queue
