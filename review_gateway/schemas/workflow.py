from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from review_gateway.models.pull_request import PullRequestData
from review_gateway.repositories.job_repository import QueueStats

class ManualTriggerRequest(BaseModel):
    installation_id: str = Field(min_length=1)
    repository_name: str = Field(pattern=r"^[^/\s]+/[^/\s]+$")
    pr_number: int = Field(gt=0)
    user_id: str = Field(min_length=1)
    reason: Optional[str] = None

class WorkflowResult(BaseModel):
    success: bool
    job_id: Optional[str] = None
    pr_data: Optional[PullRequestData] = None
    reason: Optional[str] = None
    error: Optional[str] = None

class JobQueueStatus(BaseModel):
    stats: QueueStats
    active_jobs: int

class WorkflowStatus(BaseModel):
    initialized: bool
    job_queue: JobQueueStatus
    services: Dict[str, bool]

class HealthReport(BaseModel):
    healthy: bool
    services: Dict[str, bool]
    details: Optional[Dict[str, Any]] = None
