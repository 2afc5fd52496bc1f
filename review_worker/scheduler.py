import asyncio
from typing import Dict, Optional, Set

from loguru import logger

from review_gateway.config import QueueConfig
from review_gateway.repositories.job_repository import JobRepository
from review_worker.executor import JobExecutor, JobTimeoutError


class JobScheduler:
    """Bounded pool of `max_concurrent_jobs` workers plus a supervisor.

    Workers claim the oldest eligible PENDING job, run one attempt and loop;
    idle workers sleep until woken or until the poll interval elapses. The
    supervisor ticks on the poll interval: it reaps PROCESSING jobs past their
    deadline, replaces dead or stuck workers and wakes idle ones when work is
    waiting (e.g. a retry delay expired).
    """

    def __init__(self, repo: JobRepository, executor: JobExecutor, config: QueueConfig):
        self.repo = repo
        self.executor = executor
        self.config = config
        self._workers: Set[asyncio.Task] = set()
        self._current: Dict[asyncio.Task, str] = {}
        self._supervisor: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._dispatching = False

    @property
    def is_dispatching(self) -> bool:
        return self._dispatching

    @property
    def is_running(self) -> bool:
        return self._dispatching and self._supervisor is not None and not self._supervisor.done()

    def start(self):
        if self.is_running:
            return
        self._dispatching = True
        if self._supervisor is not None and not self._supervisor.done():
            # resumed after stop(); workers that exited are replaced
            self._workers = {t for t in self._workers if not t.done()}
            self._fill_pool()
            self.wake()
            logger.info("Job scheduler dispatch resumed")
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._fill_pool()
        self._supervisor = asyncio.create_task(self._supervise(), name="job-scheduler-supervisor")
        logger.info(f"Job scheduler started: workers={self.config.max_concurrent_jobs}")

    def stop(self):
        """Stop handing out new work; attempts already running carry on."""
        self._dispatching = False
        self.wake()
        logger.info("Job scheduler dispatch stopped")

    async def close(self):
        self._dispatching = False
        tasks = list(self._workers)
        if self._supervisor:
            tasks.append(self._supervisor)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._current.clear()
        self._supervisor = None

    def wake(self):
        # callable from routers running in the threadpool
        if self._loop is None or self._wakeup is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._wakeup.set)

    def tick(self, now: Optional[float] = None) -> int:
        """One supervisor pass. Returns the number of reaped jobs."""
        reaped = self._reap_stuck_jobs(now)

        for task in [t for t in self._workers if t.done()]:
            self._workers.discard(task)
            self._current.pop(task, None)
            if not task.cancelled() and task.exception() is not None:
                logger.opt(exception=task.exception()).error("Job worker crashed; replacing it")

        if self._dispatching:
            self._fill_pool()
            if self.repo.has_eligible_pending(now):
                self.wake()
        return reaped

    def _fill_pool(self):
        while len(self._workers) < self.config.max_concurrent_jobs:
            task = asyncio.create_task(self._worker(), name="job-worker")
            self._workers.add(task)

    def _reap_stuck_jobs(self, now: Optional[float]) -> int:
        expired = self.repo.expired_processing(now, self.config.stuck_grace_ms)
        for job in expired:
            for task, job_id in list(self._current.items()):
                if job_id == job.id:
                    self._workers.discard(task)
                    self._current.pop(task, None)
                    task.cancel()
            logger.warning(f"Reaping stuck job: job_id={job.id} attempt={job.attempt} started_at={job.started_at}")
            self.executor.handle_failure(job, JobTimeoutError(job.id, self.config.job_timeout_ms))
        return len(expired)

    async def _supervise(self):
        while True:
            delay = self.config.poll_interval_ms
            try:
                self.tick()
            except Exception:
                logger.exception("Error in job scheduler loop")
                delay = self.config.error_backoff_ms
            await asyncio.sleep(delay / 1000.0)

    async def _worker(self):
        me = asyncio.current_task()
        while self._dispatching and me in self._workers:
            job = self.repo.claim_next(self.config.job_timeout_ms)
            if job is None:
                await self._wait_for_work()
                continue

            self._current[me] = job.id
            try:
                await self.executor.execute(job)
            except Exception as e:
                logger.exception(f"Job processing crashed: job_id={job.id}")
                try:
                    self.executor.handle_failure(job, e)
                except Exception:
                    logger.exception(f"Could not record crash for job_id={job.id}")
            finally:
                self._current.pop(me, None)

    async def _wait_for_work(self):
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.config.poll_interval_ms / 1000.0)
        except asyncio.TimeoutError:
            pass
