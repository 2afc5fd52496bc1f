from enum import Enum

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class JobType(str, Enum):
    PR_ANALYSIS = "pr-analysis"

class JobEvent(str, Enum):
    ADDED = "jobAdded"
    STARTED = "jobStarted"
    COMPLETED = "jobCompleted"
    RETRYING = "jobRetrying"
    FAILED = "jobFailed"
    CANCELLED = "jobCancelled"

class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)
IN_FLIGHT_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
