import os
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_EVENTS_ENABLED = os.getenv("REDIS_EVENTS_ENABLED", "false").lower() in {"1", "true", "yes", "on"}

HTTP_CONNECT_TIMEOUT_S = float(os.getenv("HTTP_CONNECT_TIMEOUT_S", "3.0"))
HTTP_READ_TIMEOUT_S = float(os.getenv("HTTP_READ_TIMEOUT_S", "30.0"))

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "")

# AI review service
REVIEW_SERVICE_URL = os.getenv("REVIEW_SERVICE_URL", "http://ai-review:9000")
REVIEW_SERVICE_PATH = os.getenv("REVIEW_SERVICE_PATH", "/v1/reviews")
REVIEW_SERVICE_HEALTH_PATH = os.getenv("REVIEW_SERVICE_HEALTH_PATH", "/health")

# GitHub REST API, used to list the files changed by a PR
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")

# Job queue knobs (milliseconds unless stated otherwise)
JOB_QUEUE_MAX_CONCURRENT = int(os.getenv("JOB_QUEUE_MAX_CONCURRENT", "3"))
JOB_QUEUE_MAX_RETRIES = int(os.getenv("JOB_QUEUE_MAX_RETRIES", "2"))
JOB_QUEUE_RETRY_DELAY = int(os.getenv("JOB_QUEUE_RETRY_DELAY", "30000"))  # 30 sec
JOB_QUEUE_TIMEOUT = int(os.getenv("JOB_QUEUE_TIMEOUT", "600000"))  # 10 min
JOB_QUEUE_CLEANUP_INTERVAL = int(os.getenv("JOB_QUEUE_CLEANUP_INTERVAL", "3600000"))  # 1 hour
JOB_QUEUE_RETENTION = int(os.getenv("JOB_QUEUE_RETENTION", "86400000"))  # 24 hours
JOB_QUEUE_POLL_INTERVAL = int(os.getenv("JOB_QUEUE_POLL_INTERVAL", "5000"))
JOB_QUEUE_ERROR_BACKOFF = int(os.getenv("JOB_QUEUE_ERROR_BACKOFF", "10000"))
JOB_QUEUE_STUCK_GRACE = int(os.getenv("JOB_QUEUE_STUCK_GRACE", "5000"))

WORKFLOW_SHUTDOWN_TIMEOUT = int(os.getenv("WORKFLOW_SHUTDOWN_TIMEOUT", "30000"))  # 30 sec

# Errors for which another attempt cannot change the outcome
NON_RETRYABLE_ERRORS = [
    "PR not eligible",
    "Invalid webhook payload",
    "Authentication failed",
    "Repository not found",
    "PR not found",
    "Review request rejected",
]


class QueueConfig(BaseModel):
    max_concurrent_jobs: int = 3
    max_retries: int = 2
    retry_delay_ms: int = 30_000
    job_timeout_ms: int = 600_000
    cleanup_interval_ms: int = 3_600_000
    retention_ms: int = 86_400_000
    poll_interval_ms: int = 5_000
    error_backoff_ms: int = 10_000
    stuck_grace_ms: int = 5_000
    shutdown_timeout_ms: int = 30_000

    @classmethod
    def from_env(cls) -> "QueueConfig":
        return cls(
            max_concurrent_jobs=JOB_QUEUE_MAX_CONCURRENT,
            max_retries=JOB_QUEUE_MAX_RETRIES,
            retry_delay_ms=JOB_QUEUE_RETRY_DELAY,
            job_timeout_ms=JOB_QUEUE_TIMEOUT,
            cleanup_interval_ms=JOB_QUEUE_CLEANUP_INTERVAL,
            retention_ms=JOB_QUEUE_RETENTION,
            poll_interval_ms=JOB_QUEUE_POLL_INTERVAL,
            error_backoff_ms=JOB_QUEUE_ERROR_BACKOFF,
            stuck_grace_ms=JOB_QUEUE_STUCK_GRACE,
            shutdown_timeout_ms=WORKFLOW_SHUTDOWN_TIMEOUT,
        )
