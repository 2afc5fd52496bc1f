import json
from typing import Callable, List
import redis
from loguru import logger
from review_gateway.config import REDIS_URL
from review_gateway.models.enums import JobEvent
from review_gateway.models.job import Job

JobListener = Callable[[JobEvent, Job], None]


class JobEventBus:
    """Fan-out of job lifecycle events to listeners.

    Purely observational: a listener that raises is logged and skipped, and
    the queue never waits on or reads back from a listener.
    """

    def __init__(self):
        self._listeners: List[JobListener] = []

    def subscribe(self, listener: JobListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: JobListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: JobEvent, job: Job):
        for listener in list(self._listeners):
            try:
                listener(event, job)
            except Exception as e:
                logger.warning(f"Job event listener failed: event={event.value} job_id={job.id} error={e}")


class RedisEventSink:
    """Forwards lifecycle events to `ws:{job_id}` for the websocket monitor."""

    def __init__(self, client: redis.Redis = None):
        self.r = client or redis.from_url(REDIS_URL, decode_responses=True)

    def __call__(self, event: JobEvent, job: Job):
        self.publish(job.id, {
            "type": event.value,
            "job_id": job.id,
            "status": job.status.value,
            "pr_number": job.payload.pr_number,
            "repository_name": job.payload.repository_name,
            "retry_count": job.retry_count,
            "error": job.error,
        })

    def publish(self, job_id: str, payload: dict):
        self.r.publish(f"ws:{job_id}", json.dumps(payload))
