import time

from review_gateway.models.enums import JobStatus
from review_gateway.models.job import Job
from review_gateway.repositories.job_repository import JobRepository
from review_worker.cleanup import CleanupSweeper

HOUR = 3600.0


def terminal_job(make_pr_data, job_id, status, completed_hours_ago, pr_number):
    now = time.time()
    return Job(
        id=job_id,
        payload=make_pr_data(pr_number=pr_number),
        status=status,
        created_at=now - (completed_hours_ago + 1) * HOUR,
        completed_at=now - completed_hours_ago * HOUR,
    )


def test_sweep_removes_only_expired_terminal_jobs(make_pr_data, queue_config):
    repo = JobRepository()
    repo.put(terminal_job(make_pr_data, "old-completed", JobStatus.COMPLETED, 25, 1))
    repo.put(terminal_job(make_pr_data, "old-failed", JobStatus.FAILED, 30, 2))
    repo.put(terminal_job(make_pr_data, "recent-completed", JobStatus.COMPLETED, 1, 3))
    repo.put(Job(id="ancient-pending", payload=make_pr_data(pr_number=4), created_at=time.time() - 100 * HOUR))

    cleaned = CleanupSweeper(repo, queue_config).sweep()

    assert cleaned == 2
    assert repo.get("old-completed") is None
    assert repo.get("old-failed") is None
    assert repo.get("recent-completed") is not None
    assert repo.get("ancient-pending") is not None


def test_sweep_honours_configured_retention(make_pr_data, queue_config):
    repo = JobRepository()
    repo.put(terminal_job(make_pr_data, "two-hours", JobStatus.COMPLETED, 2, 1))
    queue_config.retention_ms = int(HOUR * 1000)

    assert CleanupSweeper(repo, queue_config).sweep() == 1
    assert len(repo) == 0


def test_sweep_with_explicit_clock(make_pr_data, queue_config):
    repo = JobRepository()
    repo.put(terminal_job(make_pr_data, "done", JobStatus.COMPLETED, 0, 1))

    sweeper = CleanupSweeper(repo, queue_config)
    assert sweeper.sweep(now=time.time() + 23 * HOUR) == 0
    assert sweeper.sweep(now=time.time() + 25 * HOUR) == 1
