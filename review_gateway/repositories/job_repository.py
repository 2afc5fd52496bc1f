import threading
import time
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel
from review_gateway.models.enums import IN_FLIGHT_STATUSES, TERMINAL_STATUSES, JobStatus
from review_gateway.models.job import Job
from review_gateway.models.review import ReviewResult

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class InvalidTransitionError(RuntimeError):
    def __init__(self, job_id: str, current: JobStatus, target: JobStatus):
        super().__init__(f"Job {job_id}: illegal transition {current.value} -> {target.value}")
        self.job_id = job_id
        self.current = current
        self.target = target


class QueueStats(BaseModel):
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class JobRepository:
    """In-memory job store.

    Every read hands out a deep copy and every write goes through one of the
    methods below, under a single lock. Routers read from FastAPI's threadpool
    while the scheduler writes from the event loop.
    """

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def put(self, job: Job):
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def list_by_status(self, status: JobStatus) -> List[Job]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.status == status]
            jobs.sort(key=lambda j: j.created_at)
            return [j.model_copy(deep=True) for j in jobs]

    def list_by_key(self, installation_id: str, pr_number: int, repository_name: str) -> List[Job]:
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.payload.dedup_key == (installation_id, repository_name, pr_number)
            ]
            jobs.sort(key=lambda j: j.created_at, reverse=True)
            return [j.model_copy(deep=True) for j in jobs]

    def stats(self) -> QueueStats:
        stats = QueueStats()
        with self._lock:
            stats.total = len(self._jobs)
            for job in self._jobs.values():
                field = job.status.value.lower()
                setattr(stats, field, getattr(stats, field) + 1)
        return stats

    def count_by_status(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for j in self._jobs.values() if j.status == status)

    def add_if_absent(self, job: Job) -> Tuple[str, bool]:
        """Insert `job` unless an in-flight job already covers the same PR.

        Returns (job_id, created). The check and the insert happen under one
        lock so two near-simultaneous submissions cannot both create a job.
        """
        key = job.payload.dedup_key
        with self._lock:
            for existing in self._jobs.values():
                if existing.status in IN_FLIGHT_STATUSES and existing.payload.dedup_key == key:
                    return existing.id, False
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.id, True

    def has_eligible_pending(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            return any(j.status == JobStatus.PENDING and j.not_before <= now for j in self._jobs.values())

    def claim_next(self, timeout_ms: int, now: Optional[float] = None) -> Optional[Job]:
        now = time.time() if now is None else now
        with self._lock:
            candidates = [
                j for j in self._jobs.values()
                if j.status == JobStatus.PENDING and j.not_before <= now
            ]
            if not candidates:
                return None
            job = min(candidates, key=lambda j: j.created_at)
            self._transition(job, JobStatus.PROCESSING)
            job.started_at = now
            job.deadline = now + timeout_ms / 1000.0
            job.attempt += 1
            return job.model_copy(deep=True)

    def complete(self, job_id: str, attempt: int, result: ReviewResult) -> bool:
        with self._lock:
            job = self._current(job_id, attempt)
            if not job:
                return False
            self._transition(job, JobStatus.COMPLETED)
            job.result = result
            job.completed_at = max(time.time(), job.created_at)
            job.deadline = None
            return True

    def requeue(self, job_id: str, attempt: int, error: str, not_before: float) -> bool:
        with self._lock:
            job = self._current(job_id, attempt)
            if not job:
                return False
            if job.retry_count >= job.max_retries:
                raise InvalidTransitionError(job_id, job.status, JobStatus.PENDING)
            self._transition(job, JobStatus.PENDING)
            job.retry_count += 1
            job.error = f"Retry {job.retry_count}/{job.max_retries}: {error}"
            job.not_before = not_before
            job.deadline = None
            return True

    def fail(self, job_id: str, attempt: int, error: str) -> bool:
        with self._lock:
            job = self._current(job_id, attempt)
            if not job:
                return False
            self._transition(job, JobStatus.FAILED)
            job.error = error
            job.completed_at = max(time.time(), job.created_at)
            job.deadline = None
            return True

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != JobStatus.PENDING:
                return False
            self._transition(job, JobStatus.FAILED)
            job.error = "Job cancelled"
            job.completed_at = max(time.time(), job.created_at)
            return True

    def expired_processing(self, now: Optional[float] = None, grace_ms: int = 0) -> List[Job]:
        now = time.time() if now is None else now
        with self._lock:
            return [
                j.model_copy(deep=True) for j in self._jobs.values()
                if j.status == JobStatus.PROCESSING
                and j.deadline is not None
                and j.deadline + grace_ms / 1000.0 < now
            ]

    def purge_terminal(self, cutoff: float) -> int:
        with self._lock:
            stale = [
                job_id for job_id, j in self._jobs.items()
                if j.status in TERMINAL_STATUSES
                and j.completed_at is not None
                and j.completed_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
            return len(stale)

    def _current(self, job_id: str, attempt: int) -> Optional[Job]:
        # Outcomes from a superseded attempt are dropped
        job = self._jobs.get(job_id)
        if not job or job.status != JobStatus.PROCESSING or job.attempt != attempt:
            return None
        return job

    def _transition(self, job: Job, target: JobStatus):
        if target not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidTransitionError(job.id, job.status, target)
        job.status = target
