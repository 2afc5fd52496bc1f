import time
import pytest
from review_gateway.repositories.job_repository import JobRepository, InvalidTransitionError
from review_gateway.models.enums import JobStatus
from review_gateway.models.job import Job
from review_gateway.models.review import ReviewResult


def make_job(make_pr_data, job_id, created_at, **pr_overrides):
    return Job(id=job_id, payload=make_pr_data(**pr_overrides), created_at=created_at, max_retries=2)


def review(pr_number=42):
    return ReviewResult(installation_id="1001", repository_name="org/app", pr_number=pr_number, merge_score=90)


def test_put_and_get_returns_copies(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "job-1", 100.0))

    job = repo.get("job-1")
    assert job.status == JobStatus.PENDING
    job.status = JobStatus.COMPLETED
    assert repo.get("job-1").status == JobStatus.PENDING
    assert repo.get("missing") is None


def test_list_by_status_oldest_first(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "job-b", 200.0, pr_number=2))
    repo.put(make_job(make_pr_data, "job-a", 100.0, pr_number=1))
    repo.put(make_job(make_pr_data, "job-c", 300.0, pr_number=3))

    assert [j.id for j in repo.list_by_status(JobStatus.PENDING)] == ["job-a", "job-b", "job-c"]


def test_list_by_key_newest_first(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "old", 100.0))
    repo.put(make_job(make_pr_data, "new", 200.0))
    repo.put(make_job(make_pr_data, "other-pr", 150.0, pr_number=43))

    assert [j.id for j in repo.list_by_key("1001", 42, "org/app")] == ["new", "old"]


def test_add_if_absent_dedups_in_flight_jobs(make_pr_data):
    repo = JobRepository()
    first_id, created = repo.add_if_absent(make_job(make_pr_data, "job-1", 100.0))
    assert created is True

    second_id, created = repo.add_if_absent(make_job(make_pr_data, "job-2", 101.0))
    assert created is False
    assert second_id == first_id
    assert repo.stats().total == 1


def test_add_if_absent_allows_resubmission_after_terminal_state(make_pr_data):
    repo = JobRepository()
    repo.add_if_absent(make_job(make_pr_data, "job-1", 100.0))
    assert repo.cancel("job-1") is True

    job_id, created = repo.add_if_absent(make_job(make_pr_data, "job-2", 101.0))
    assert created is True
    assert job_id == "job-2"


def test_claim_next_is_fifo_and_respects_not_before(make_pr_data):
    repo = JobRepository()
    delayed = make_job(make_pr_data, "delayed", 50.0, pr_number=1)
    delayed.not_before = 1_000.0
    repo.put(delayed)
    repo.put(make_job(make_pr_data, "second", 200.0, pr_number=2))
    repo.put(make_job(make_pr_data, "first", 100.0, pr_number=3))

    job = repo.claim_next(timeout_ms=60_000, now=500.0)
    assert job.id == "first"
    assert job.status == JobStatus.PROCESSING
    assert job.started_at == 500.0
    assert job.deadline == 560.0
    assert job.attempt == 1

    assert repo.claim_next(timeout_ms=60_000, now=500.0).id == "second"
    assert repo.claim_next(timeout_ms=60_000, now=500.0) is None
    assert repo.claim_next(timeout_ms=60_000, now=1_000.0).id == "delayed"


def test_job_transitions(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "job-2", time.time()))

    job = repo.claim_next(timeout_ms=1_000)
    assert repo.requeue(job.id, job.attempt, "network error", not_before=0.0) is True
    updated = repo.get("job-2")
    assert updated.status == JobStatus.PENDING
    assert updated.retry_count == 1
    assert updated.error == "Retry 1/2: network error"

    job = repo.claim_next(timeout_ms=1_000)
    assert job.attempt == 2
    assert repo.complete(job.id, job.attempt, review()) is True
    done = repo.get("job-2")
    assert done.status == JobStatus.COMPLETED
    assert done.result.merge_score == 90
    assert done.completed_at >= done.created_at


def test_stale_attempt_outcome_is_discarded(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "job-3", time.time()))
    first = repo.claim_next(timeout_ms=1_000)
    repo.requeue(first.id, first.attempt, "timeout", not_before=0.0)
    second = repo.claim_next(timeout_ms=1_000)

    assert repo.complete(first.id, first.attempt, review()) is False
    assert repo.fail(first.id, first.attempt, "late failure") is False
    assert repo.get("job-3").status == JobStatus.PROCESSING
    assert repo.fail(second.id, second.attempt, "PR not found") is True


def test_requeue_beyond_max_retries_is_rejected(make_pr_data):
    repo = JobRepository()
    job = make_job(make_pr_data, "job-4", time.time())
    job.retry_count = 2
    repo.put(job)
    claimed = repo.claim_next(timeout_ms=1_000)

    with pytest.raises(InvalidTransitionError):
        repo.requeue(claimed.id, claimed.attempt, "network error", not_before=0.0)


def test_cancel_only_pending(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "pending", 100.0, pr_number=1))
    repo.put(make_job(make_pr_data, "running", 50.0, pr_number=2))
    repo.claim_next(timeout_ms=1_000)

    assert repo.cancel("running") is False
    assert repo.cancel("missing") is False
    assert repo.cancel("pending") is True
    cancelled = repo.get("pending")
    assert cancelled.status == JobStatus.FAILED
    assert cancelled.error == "Job cancelled"
    assert cancelled.completed_at is not None
    assert repo.cancel("pending") is False


def test_stats_counts_each_status(make_pr_data):
    repo = JobRepository()
    for n in range(4):
        repo.put(make_job(make_pr_data, f"job-{n}", 100.0 + n, pr_number=n))
    claimed = repo.claim_next(timeout_ms=1_000)
    repo.complete(claimed.id, claimed.attempt, review())
    repo.claim_next(timeout_ms=1_000)
    repo.cancel("job-3")

    stats = repo.stats()
    assert stats.model_dump() == {"total": 4, "pending": 1, "processing": 1, "completed": 1, "failed": 1}


def test_expired_processing_uses_deadline_and_grace(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "job-5", 100.0))
    repo.claim_next(timeout_ms=10_000, now=100.0)

    assert repo.expired_processing(now=109.0) == []
    assert repo.expired_processing(now=112.0, grace_ms=5_000) == []
    assert [j.id for j in repo.expired_processing(now=116.0, grace_ms=5_000)] == ["job-5"]


def test_purge_terminal_keeps_in_flight_jobs(make_pr_data):
    repo = JobRepository()
    repo.put(make_job(make_pr_data, "old-pending", 1.0, pr_number=1))
    repo.put(make_job(make_pr_data, "old-failed", 2.0, pr_number=2))
    repo.cancel("old-failed")

    assert repo.purge_terminal(cutoff=time.time() + 1) == 1
    assert repo.get("old-failed") is None
    assert repo.get("old-pending") is not None
