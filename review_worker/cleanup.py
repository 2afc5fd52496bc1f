import asyncio
import time
from typing import Optional

from loguru import logger

from review_gateway.config import QueueConfig
from review_gateway.repositories.job_repository import JobRepository


class CleanupSweeper:
    """Periodically drops COMPLETED/FAILED jobs older than the retention window."""

    def __init__(self, repo: JobRepository, config: QueueConfig):
        self.repo = repo
        self.config = config
        self._task: Optional[asyncio.Task] = None

    def sweep(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        cutoff = now - self.config.retention_ms / 1000.0
        cleaned = self.repo.purge_terminal(cutoff)
        if cleaned:
            logger.info(f"Cleaned up old jobs: cleaned={cleaned} remaining={len(self.repo)}")
        return cleaned

    def start(self):
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="job-cleanup-sweeper")

    async def close(self):
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _run(self):
        while True:
            await asyncio.sleep(self.config.cleanup_interval_ms / 1000.0)
            try:
                self.sweep()
            except Exception:
                logger.exception("Job cleanup run failed")
