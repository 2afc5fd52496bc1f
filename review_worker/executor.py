import asyncio
import time
from typing import Protocol

from loguru import logger

from review_gateway.config import QueueConfig
from review_gateway.models.enums import JobEvent
from review_gateway.models.job import Job
from review_gateway.models.pull_request import PullRequestData
from review_gateway.models.review import ReviewResult
from review_gateway.repositories.job_repository import JobRepository
from review_gateway.services.event_service import JobEventBus
from review_worker.retry_policy import decide_retry, error_message


class Analyzer(Protocol):
    async def analyze(self, pr_data: PullRequestData) -> ReviewResult: ...


class JobTimeoutError(TimeoutError):
    def __init__(self, job_id: str, timeout_ms: int):
        super().__init__(f"Job {job_id} exceeded timeout of {timeout_ms}ms")
        self.job_id = job_id
        self.timeout_ms = timeout_ms


class AnalyzerTimeoutError(Exception):
    """Wraps a TimeoutError raised by the analyzer itself."""

    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


class JobExecutor:
    """Runs one attempt of a claimed (PROCESSING) job and records the outcome."""

    def __init__(self, repo: JobRepository, analyzer: Analyzer, events: JobEventBus, config: QueueConfig):
        self.repo = repo
        self.analyzer = analyzer
        self.events = events
        self.config = config

    async def execute(self, job: Job) -> str:
        t0 = time.time()
        self._emit(JobEvent.STARTED, job.id)

        try:
            result = await asyncio.wait_for(
                self._analyze(job.payload),
                timeout=self.config.job_timeout_ms / 1000.0,
            )
            if isinstance(result, dict):
                result = ReviewResult.model_validate(result)
        except AnalyzerTimeoutError as e:
            return self.handle_failure(job, e.error, t0)
        except asyncio.TimeoutError:
            return self.handle_failure(job, JobTimeoutError(job.id, self.config.job_timeout_ms), t0)
        except Exception as e:
            return self.handle_failure(job, e, t0)

        if not self.repo.complete(job.id, job.attempt, result):
            logger.warning(f"Discarding result of superseded attempt: job_id={job.id} attempt={job.attempt}")
            return "STALE"

        logger.info(
            f"Job completed: job_id={job.id} pr={job.payload.pr_number} "
            f"repository={job.payload.repository_name} merge_score={result.merge_score} "
            f"processing_time_ms={int((time.time() - t0) * 1000)}"
        )
        self._emit(JobEvent.COMPLETED, job.id)
        return "COMPLETED"

    async def _analyze(self, pr_data: PullRequestData) -> ReviewResult:
        # keeps the analyzer's own timeouts apart from the job timeout
        try:
            return await self.analyzer.analyze(pr_data)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise AnalyzerTimeoutError(e) from e

    def handle_failure(self, job: Job, error: BaseException, t0: float = None) -> str:
        message = error_message(error)
        elapsed_ms = int((time.time() - (t0 or time.time())) * 1000)
        logger.warning(
            f"Job attempt failed: job_id={job.id} pr={job.payload.pr_number} "
            f"repository={job.payload.repository_name} retry_count={job.retry_count} "
            f"processing_time_ms={elapsed_ms} error={message}"
        )

        decision = decide_retry(error, job.retry_count, job.max_retries, self.config.retry_delay_ms)
        if decision.retry:
            not_before = time.time() + decision.delay_ms / 1000.0
            if not self.repo.requeue(job.id, job.attempt, message, not_before):
                return "STALE"
            logger.info(
                f"Job scheduled for retry: job_id={job.id} retry={job.retry_count + 1}/{job.max_retries} "
                f"delay_ms={decision.delay_ms}"
            )
            self._emit(JobEvent.RETRYING, job.id)
            return "RETRY"

        if not self.repo.fail(job.id, job.attempt, message):
            return "STALE"
        logger.error(
            f"Job failed permanently: job_id={job.id} pr={job.payload.pr_number} "
            f"repository={job.payload.repository_name} total_retries={job.retry_count} "
            f"reason={decision.reason} error={message}"
        )
        self._emit(JobEvent.FAILED, job.id)
        return "FAILED"

    def _emit(self, event: JobEvent, job_id: str):
        snapshot = self.repo.get(job_id)
        if snapshot:
            self.events.publish(event, snapshot)
