from typing import List
from fastapi import APIRouter, Depends, HTTPException

from review_gateway.dependencies import get_queue
from review_gateway.repositories.job_repository import QueueStats
from review_gateway.schemas.jobs import CancelJobResponse, JobResponse
from review_worker.queue import JobQueueService

router = APIRouter()

@router.get("/jobs/stats", response_model=QueueStats)
def queue_stats(queue: JobQueueService = Depends(get_queue)):
    return queue.get_queue_stats()

@router.get("/jobs", response_model=List[JobResponse])
def jobs_for_pr(installation_id: str, repository_name: str, pr_number: int,
                queue: JobQueueService = Depends(get_queue)):
    jobs = queue.get_jobs_for_pr(installation_id, pr_number, repository_name)
    return [JobResponse.from_job(j) for j in jobs]

@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, queue: JobQueueService = Depends(get_queue)):
    job = queue.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return JobResponse.from_job(job)

@router.post("/jobs/{job_id}/cancel", response_model=CancelJobResponse)
def cancel_job(job_id: str, queue: JobQueueService = Depends(get_queue)):
    job = queue.get_job(job_id)
    if not job:
        raise HTTPException(404, "Job not found")

    if not queue.cancel_job(job_id):
        raise HTTPException(409, f"Only pending jobs can be cancelled (status={job.status.value})")

    return {"success": True, "job_id": job_id, "status": queue.get_job(job_id).status}
