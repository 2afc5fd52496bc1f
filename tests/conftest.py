import asyncio
import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from review_gateway.config import QueueConfig
from review_gateway.main import build_workflow, create_app
from review_gateway.models.pull_request import LinkedIssue, PullRequestData
from review_gateway.models.review import ReviewResult
from review_gateway.services.pr_analysis_service import GitHubFilesClient, PRAnalysisService


class FakeAnalyzer:
    """Scripted stand-in for the AI review service.

    Each call consumes the next outcome: an exception is raised, "block" waits
    until `release` is set, anything else returns a ReviewResult.
    """

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []
        self.release = asyncio.Event()
        self.cancelled = 0

    async def analyze(self, pr_data):
        self.calls.append(pr_data)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "block":
            try:
                await self.release.wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        return ReviewResult(
            installation_id=pr_data.installation_id,
            repository_name=pr_data.repository_name,
            pr_number=pr_data.pr_number,
            merge_score=82,
            summary="Looks good",
            violated_rules=[],
        )


@pytest.fixture
def make_pr_data():
    def factory(**overrides):
        data = {
            "installation_id": "1001",
            "repository_name": "org/app",
            "pr_number": 42,
            "pr_url": "https://github.com/org/app/pull/42",
            "title": "Fix login redirect",
            "body": "Fixes #7",
            "linked_issues": [LinkedIssue(number=7, url="https://github.com/org/app/issues/7", link_type="fixes")],
            "author": "octocat",
            "is_draft": False,
        }
        data.update(overrides)
        return PullRequestData(**data)
    return factory


@pytest.fixture
def queue_config():
    return QueueConfig(
        max_concurrent_jobs=3,
        max_retries=2,
        retry_delay_ms=0,
        job_timeout_ms=2_000,
        cleanup_interval_ms=3_600_000,
        retention_ms=86_400_000,
        poll_interval_ms=10,
        error_backoff_ms=20,
        stuck_grace_ms=0,
        shutdown_timeout_ms=1_000,
    )


@pytest.fixture
def fake_analyzer():
    return FakeAnalyzer()


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout=3.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()
    return _wait


@pytest.fixture
def github_files():
    github = MagicMock(spec=GitHubFilesClient)
    github.get_pr_files.return_value = [
        {"filename": "src/login.py", "status": "modified", "additions": 4, "deletions": 1, "patch": "@@ -1 +1 @@"},
    ]
    return github


@pytest.fixture
def workflow(queue_config, fake_analyzer, github_files):
    return build_workflow(queue_config, analyzer=fake_analyzer, pr_analysis=PRAnalysisService(github=github_files))


@pytest.fixture
def client(workflow):
    with TestClient(create_app(workflow)) as c:
        yield c


@pytest.fixture
def webhook_payload():
    return {
        "action": "opened",
        "number": 42,
        "pull_request": {
            "id": 1,
            "number": 42,
            "title": "Fix login redirect",
            "body": "This change fixes #7 and closes https://github.com/org/lib/issues/3",
            "html_url": "https://github.com/org/app/pull/42",
            "draft": False,
            "user": {"login": "octocat"},
        },
        "repository": {"full_name": "org/app"},
        "installation": {"id": 1001},
    }
