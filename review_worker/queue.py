import time
import uuid
from typing import List, Optional

from loguru import logger

from review_gateway.config import QueueConfig
from review_gateway.models.enums import JobEvent, JobStatus, JobType
from review_gateway.models.job import Job
from review_gateway.models.pull_request import PullRequestData
from review_gateway.repositories.job_repository import JobRepository, QueueStats
from review_gateway.services.event_service import JobEventBus
from review_worker.cleanup import CleanupSweeper
from review_worker.executor import Analyzer, JobExecutor
from review_worker.scheduler import JobScheduler


def generate_job_id(pr_data: PullRequestData) -> str:
    repo = pr_data.repository_name.replace("/", "-")
    return f"{JobType.PR_ANALYSIS.value}-{pr_data.installation_id}-{repo}-{pr_data.pr_number}-{uuid.uuid4().hex[:12]}"


class JobQueueService:
    """In-process PR analysis queue.

    Owns the job store, the scheduler's worker pool and the cleanup sweeper.
    Constructed explicitly by the application's composition root.
    """

    def __init__(self, analyzer: Analyzer, config: Optional[QueueConfig] = None,
                 repo: Optional[JobRepository] = None, events: Optional[JobEventBus] = None):
        self.config = config or QueueConfig.from_env()
        self.repo = repo or JobRepository()
        self.events = events or JobEventBus()
        self.executor = JobExecutor(self.repo, analyzer, self.events, self.config)
        self.scheduler = JobScheduler(self.repo, self.executor, self.config)
        self.sweeper = CleanupSweeper(self.repo, self.config)

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    def start(self):
        self.scheduler.start()
        self.sweeper.start()

    def stop(self):
        self.scheduler.stop()
        logger.info("Job queue processing stopped")

    async def close(self):
        await self.scheduler.close()
        await self.sweeper.close()

    def add_pr_analysis_job(self, pr_data: PullRequestData) -> str:
        job = Job(
            id=generate_job_id(pr_data),
            type=JobType.PR_ANALYSIS,
            payload=pr_data,
            status=JobStatus.PENDING,
            created_at=time.time(),
            max_retries=self.config.max_retries,
        )
        job_id, created = self.repo.add_if_absent(job)
        if not created:
            logger.info(
                f"Job already exists and is pending/processing: job_id={job_id} "
                f"pr={pr_data.pr_number} repository={pr_data.repository_name}"
            )
            return job_id

        logger.info(
            f"PR analysis job added to queue: job_id={job_id} pr={pr_data.pr_number} "
            f"repository={pr_data.repository_name} queue_size={len(self.repo)}"
        )
        self.events.publish(JobEvent.ADDED, self.repo.get(job_id) or job)
        self.scheduler.wake()
        return job_id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.repo.get(job_id)

    def get_jobs_for_pr(self, installation_id: str, pr_number: int, repository_name: str) -> List[Job]:
        return self.repo.list_by_key(installation_id, pr_number, repository_name)

    def get_queue_stats(self) -> QueueStats:
        return self.repo.stats()

    def get_active_jobs_count(self) -> int:
        return self.repo.count_by_status(JobStatus.PROCESSING)

    def cancel_job(self, job_id: str) -> bool:
        if not self.repo.cancel(job_id):
            return False
        logger.info(f"Job cancelled: job_id={job_id}")
        job = self.repo.get(job_id)
        if job:
            self.events.publish(JobEvent.CANCELLED, job)
        return True

    def cleanup_old_jobs(self, now: Optional[float] = None) -> int:
        return self.sweeper.sweep(now)
