import asyncio
import time
import requests
from typing import Dict, Any, Optional
from pydantic import ValidationError
from review_gateway.config import (
    REVIEW_SERVICE_URL, REVIEW_SERVICE_PATH, REVIEW_SERVICE_HEALTH_PATH,
    INTERNAL_API_KEY, HTTP_CONNECT_TIMEOUT_S, JOB_QUEUE_TIMEOUT,
)
from review_gateway.models.pull_request import PullRequestData
from review_gateway.models.review import ReviewResult

REQUEST_REJECTED = "Review request rejected"


class ReviewServiceError(RuntimeError):
    def __init__(self, code: str, message: str, retryable: bool, details: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.details = details

class ReviewServiceClient:
    """Client for the AI review service.

    `analyze` is the single call the job queue depends on: PR data in,
    ReviewResult out, any failure raised as ReviewServiceError.
    """

    def __init__(self, base_url: str = REVIEW_SERVICE_URL, api_key: str = INTERNAL_API_KEY,
                 read_timeout_s: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        # read timeout defaults to the queue's job timeout
        self.read_timeout_s = read_timeout_s if read_timeout_s is not None else JOB_QUEUE_TIMEOUT / 1000.0

    def _headers(self, idempotency_key: str) -> Dict[str, str]:
        h = {"Content-Type": "application/json", "Idempotency-Key": idempotency_key}
        if self.api_key:
            h["X-Internal-Key"] = self.api_key
        return h

    def _parse_error(self, resp: requests.Response) -> dict:
        try:
            body = resp.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("status") == "FAILED" and isinstance(body.get("error"), dict):
            err = body["error"]
            return {
                "code": err.get("code", "SERVICE_ERROR"),
                "message": err.get("message", f"HTTP {resp.status_code}"),
                "retryable": bool(err.get("retryable", resp.status_code >= 500)),
                "details": err,
            }

        return {
            "code": "SERVICE_HTTP_ERROR",
            "message": f"Review service returned HTTP {resp.status_code}",
            "retryable": resp.status_code >= 500,
            "details": body if isinstance(body, dict) else None,
        }

    @staticmethod
    def _error(err: dict) -> ReviewServiceError:
        message = err["message"]
        # the queue classifies failures by message only
        if not err["retryable"] and err["code"] not in ("AUTH_FAILED", "NOT_FOUND"):
            message = f"{REQUEST_REJECTED}: {message}"
        return ReviewServiceError(err["code"], message, err["retryable"], err.get("details"))

    def review(self, pr_data: PullRequestData, timeout_s: Optional[float] = None) -> ReviewResult:
        url = self.base_url + REVIEW_SERVICE_PATH
        idem = f"{pr_data.installation_id}:{pr_data.repository_name}:{pr_data.pr_number}"

        read_t = self.read_timeout_s if timeout_s is None else float(timeout_s)
        timeout = (HTTP_CONNECT_TIMEOUT_S, read_t)

        t0 = time.time()
        try:
            resp = requests.post(url, json=pr_data.model_dump(mode="json"), headers=self._headers(idem), timeout=timeout)
        except requests.Timeout as e:
            raise ReviewServiceError("SERVICE_TIMEOUT", f"Review service timeout: {e}", True)
        except requests.RequestException as e:
            raise ReviewServiceError("SERVICE_UNREACHABLE", f"Review service network error: {e}", True)

        if resp.status_code < 200 or resp.status_code >= 300:
            err = self._parse_error(resp)

            # map statuses onto the queue's non-retryable classifications
            if resp.status_code in (401, 403):
                err["code"] = "AUTH_FAILED"
                err["message"] = f"Authentication failed: {err['message']}"
                err["retryable"] = False
            elif resp.status_code == 404:
                err["code"] = "NOT_FOUND"
                err["message"] = f"PR not found: {pr_data.repository_name}#{pr_data.pr_number}"
                err["retryable"] = False
            elif resp.status_code in (429, 503):
                err["code"] = "RESOURCE_EXHAUSTED"
                err["retryable"] = True

            raise self._error(err)

        try:
            out = resp.json()
        except ValueError:
            raise ReviewServiceError("BAD_RESPONSE", "Review service returned non-JSON", True)

        if not isinstance(out, dict) or out.get("status") != "SUCCESS":
            err = out.get("error", {}) if isinstance(out, dict) else {}
            raise self._error({
                "code": err.get("code", "SERVICE_FAILED"),
                "message": err.get("message", "Review service failed"),
                "retryable": bool(err.get("retryable", True)),
                "details": err,
            })

        data = out.get("data")
        if not isinstance(data, dict):
            raise ReviewServiceError("BAD_RESPONSE", "Missing data object", True)

        data.setdefault("installation_id", pr_data.installation_id)
        data.setdefault("repository_name", pr_data.repository_name)
        data.setdefault("pr_number", pr_data.pr_number)
        data.setdefault("processing_time_ms", int((time.time() - t0) * 1000))
        try:
            return ReviewResult.model_validate(data)
        except ValidationError as e:
            raise ReviewServiceError("BAD_RESPONSE", f"Malformed review result: {e.error_count()} errors", True)

    async def analyze(self, pr_data: PullRequestData, timeout_s: Optional[float] = None) -> ReviewResult:
        # the read timeout bounds the worker thread even after the caller gives up
        return await asyncio.to_thread(self.review, pr_data, timeout_s)

    def health(self) -> Dict[str, Any]:
        url = self.base_url + REVIEW_SERVICE_HEALTH_PATH
        try:
            r = requests.get(url, timeout=(2, 2))
            return {"ok": r.status_code == 200, "status_code": r.status_code}
        except requests.RequestException as e:
            return {"ok": False, "error": str(e)}
