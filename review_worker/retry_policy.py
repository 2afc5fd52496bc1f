from typing import Iterable, NamedTuple, Optional

from review_gateway.config import NON_RETRYABLE_ERRORS


class RetryDecision(NamedTuple):
    retry: bool
    delay_ms: int = 0
    reason: str = ""


def error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def is_non_retryable(message: str, classifications: Iterable[str] = NON_RETRYABLE_ERRORS) -> Optional[str]:
    """Return the classification `message` falls under, if any."""
    lowered = message.lower()
    for item in classifications:
        if item.lower() in lowered:
            return item
    return None


def decide_retry(error: BaseException, retry_count: int, max_retries: int, retry_delay_ms: int) -> RetryDecision:
    if retry_count >= max_retries:
        return RetryDecision(False, reason="retries exhausted")

    matched = is_non_retryable(error_message(error))
    if matched:
        return RetryDecision(False, reason=f"non-retryable: {matched}")

    return RetryDecision(True, delay_ms=retry_delay_ms, reason="transient")
