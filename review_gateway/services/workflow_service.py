import asyncio
import time
from typing import Any, Dict

from loguru import logger

from review_gateway.models.enums import JobEvent
from review_gateway.models.job import Job
from review_gateway.models.pull_request import PullRequestData
from review_gateway.models.review import ReviewResult
from review_gateway.schemas.workflow import (
    HealthReport, JobQueueStatus, ManualTriggerRequest, WorkflowResult, WorkflowStatus,
)
from review_gateway.services.pr_analysis_service import PRAnalysisService, PRNotEligibleError
from review_worker.executor import Analyzer
from review_worker.queue import JobQueueService


class WorkflowService:
    """Entry point from inbound events to queued PR analysis.

    Submission failures come back as a WorkflowResult; what happens to a job
    afterwards is only visible through the status queries.
    """

    def __init__(self, queue: JobQueueService, pr_analysis: PRAnalysisService, analyzer: Analyzer):
        self.queue = queue
        self.pr_analysis = pr_analysis
        self.analyzer = analyzer
        self.initialized = False

    async def initialize(self):
        if self.initialized:
            return
        logger.info("Initializing workflow service")
        self.queue.events.subscribe(self._log_job_event)
        self.queue.start()
        self.initialized = True
        logger.info("Workflow service initialized")

    def process_webhook_workflow(self, payload: Dict[str, Any]) -> WorkflowResult:
        t0 = time.time()
        try:
            pr = payload.get("pull_request") or {}
            logger.info(
                f"Starting webhook workflow: action={payload.get('action')} pr={pr.get('number')} "
                f"repository={(payload.get('repository') or {}).get('full_name')}"
            )

            try:
                pr_data = self.pr_analysis.create_complete_pr_data(payload)
            except PRNotEligibleError as e:
                logger.info(
                    f"PR not eligible for analysis: pr={e.pr_number} repository={e.repository_name} reason={e.reason}"
                )
                return WorkflowResult(success=True, reason=e.reason)

            self.pr_analysis.log_analysis_decision(pr_data, True)
            job_id = self.queue.add_pr_analysis_job(pr_data)

            logger.info(
                f"Webhook workflow completed: job_id={job_id} pr={pr_data.pr_number} "
                f"repository={pr_data.repository_name} processing_time_ms={int((time.time() - t0) * 1000)}"
            )
            return WorkflowResult(success=True, job_id=job_id, pr_data=pr_data)

        except Exception as e:
            logger.error(f"Webhook workflow failed: error={e} processing_time_ms={int((time.time() - t0) * 1000)}")
            return WorkflowResult(success=False, error=str(e))

    def process_manual_analysis_workflow(self, request: ManualTriggerRequest) -> WorkflowResult:
        t0 = time.time()
        try:
            logger.info(
                f"Starting manual analysis workflow: installation_id={request.installation_id} "
                f"repository={request.repository_name} pr={request.pr_number} reason={request.reason}"
            )
            pr_data = PullRequestData(
                installation_id=request.installation_id,
                repository_name=request.repository_name,
                pr_number=request.pr_number,
                pr_url=f"https://github.com/{request.repository_name}/pull/{request.pr_number}",
                title="Manual Analysis Request",
                body=request.reason or "Manually triggered analysis",
                author=request.user_id,
                is_draft=False,
            )
            job_id = self.queue.add_pr_analysis_job(pr_data)

            logger.info(
                f"Manual analysis workflow completed: job_id={job_id} "
                f"processing_time_ms={int((time.time() - t0) * 1000)}"
            )
            return WorkflowResult(success=True, job_id=job_id, pr_data=pr_data)

        except Exception as e:
            logger.error(f"Manual analysis workflow failed: error={e}")
            return WorkflowResult(success=False, error=str(e))

    async def process_direct_analysis_workflow(self, pr_data: PullRequestData) -> ReviewResult:
        t0 = time.time()
        logger.info(f"Starting direct analysis: pr={pr_data.pr_number} repository={pr_data.repository_name}")
        try:
            result = await self.analyzer.analyze(pr_data)
        except Exception as e:
            logger.error(
                f"Direct analysis workflow failed: pr={pr_data.pr_number} repository={pr_data.repository_name} "
                f"error={e} processing_time_ms={int((time.time() - t0) * 1000)}"
            )
            raise
        logger.info(
            f"Direct analysis completed: pr={pr_data.pr_number} merge_score={result.merge_score} "
            f"processing_time_ms={int((time.time() - t0) * 1000)}"
        )
        return result

    def _services(self) -> Dict[str, bool]:
        return {
            "initialized": self.initialized,
            "job_queue": self.queue is not None and self.queue.is_running,
            "orchestration": self.analyzer is not None,
            "error_handling": True,
        }

    def get_workflow_status(self) -> WorkflowStatus:
        services = self._services()
        services.pop("initialized")
        return WorkflowStatus(
            initialized=self.initialized,
            job_queue=JobQueueStatus(
                stats=self.queue.get_queue_stats(),
                active_jobs=self.queue.get_active_jobs_count(),
            ),
            services=services,
        )

    def health_check(self) -> HealthReport:
        services = self._services()
        healthy = all(services.values())
        details = None
        if not healthy:
            details = {
                "queue_stats": self.queue.get_queue_stats().model_dump(),
                "active_jobs": self.queue.get_active_jobs_count(),
            }
        return HealthReport(healthy=healthy, services=services, details=details)

    async def shutdown(self, poll_interval_s: float = 1.0):
        logger.info("Starting workflow shutdown")
        self.queue.stop()

        timeout_s = self.queue.config.shutdown_timeout_ms / 1000.0
        t0 = time.monotonic()
        while self.queue.get_active_jobs_count() > 0 and time.monotonic() - t0 < timeout_s:
            logger.info(
                f"Waiting for active jobs to complete: active_jobs={self.queue.get_active_jobs_count()} "
                f"waited_s={time.monotonic() - t0:.1f}"
            )
            await asyncio.sleep(poll_interval_s)

        remaining = self.queue.get_active_jobs_count()
        if remaining:
            logger.warning(f"Shutdown timeout reached with active jobs remaining: remaining={remaining}")

        await self.queue.close()
        self.queue.events.unsubscribe(self._log_job_event)
        self.initialized = False
        logger.info("Workflow shutdown completed")

    @staticmethod
    def _log_job_event(event: JobEvent, job: Job):
        msg = (
            f"Job event {event.value}: job_id={job.id} pr={job.payload.pr_number} "
            f"repository={job.payload.repository_name} retry_count={job.retry_count}"
        )
        if event == JobEvent.FAILED:
            logger.error(f"{msg} error={job.error}")
        elif event == JobEvent.COMPLETED:
            logger.info(f"{msg} merge_score={job.result.merge_score if job.result else None}")
        else:
            logger.info(msg)
