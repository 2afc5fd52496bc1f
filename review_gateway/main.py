from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from review_gateway.config import QueueConfig, REDIS_EVENTS_ENABLED
from review_gateway.routers import jobs, websocket, health, workflow as workflow_router
from review_gateway.services.event_service import JobEventBus, RedisEventSink
from review_gateway.services.pr_analysis_service import PRAnalysisService
from review_gateway.services.review_service_client import ReviewServiceClient
from review_gateway.services.workflow_service import WorkflowService
from review_worker.queue import JobQueueService


def build_workflow(config: Optional[QueueConfig] = None, analyzer=None,
                   pr_analysis: Optional[PRAnalysisService] = None) -> WorkflowService:
    config = config or QueueConfig.from_env()
    analyzer = analyzer or ReviewServiceClient(read_timeout_s=config.job_timeout_ms / 1000.0)
    events = JobEventBus()
    if REDIS_EVENTS_ENABLED:
        events.subscribe(RedisEventSink())
    queue = JobQueueService(analyzer, config=config, events=events)
    return WorkflowService(queue, pr_analysis or PRAnalysisService(), analyzer)


def create_app(workflow: Optional[WorkflowService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.workflow = workflow or build_workflow()
        await app.state.workflow.initialize()
        try:
            yield
        finally:
            await app.state.workflow.shutdown()

    app = FastAPI(title="PR Review Gateway", lifespan=lifespan)
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(workflow_router.router, prefix="/api/v1")
    app.include_router(health.router, prefix="/api/v1")
    app.include_router(websocket.router)
    return app


app = create_app()
