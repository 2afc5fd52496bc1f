import time
from typing import Optional
from pydantic import BaseModel, Field
from review_gateway.models.enums import JobStatus, JobType
from review_gateway.models.pull_request import PullRequestData
from review_gateway.models.review import ReviewResult

class Job(BaseModel):
    id: str
    type: JobType = JobType.PR_ANALYSIS
    payload: PullRequestData
    status: JobStatus = Field(default=JobStatus.PENDING)

    result: Optional[ReviewResult] = None
    error: Optional[str] = None

    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=2, ge=0)

    # Retry gating and stuck-job detection
    not_before: float = 0.0
    deadline: Optional[float] = None
    attempt: int = 0

    created_at: float = Field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
