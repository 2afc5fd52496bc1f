from pydantic import BaseModel
from typing import Optional
from review_gateway.models.enums import JobStatus, JobType
from review_gateway.models.review import ReviewResult

class JobResponse(BaseModel):
    id: str
    type: JobType
    status: JobStatus
    installation_id: str
    repository_name: str
    pr_number: int
    retry_count: int
    max_retries: int
    created_at: float
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    result: Optional[ReviewResult] = None
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job) -> "JobResponse":
        return cls(
            id=job.id,
            type=job.type,
            status=job.status,
            installation_id=job.payload.installation_id,
            repository_name=job.payload.repository_name,
            pr_number=job.payload.pr_number,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            result=job.result,
            error=job.error,
        )

class CancelJobResponse(BaseModel):
    success: bool
    job_id: str
    status: JobStatus
