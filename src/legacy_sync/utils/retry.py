"""Retry policies built on tenacity.

The legacy platform client retries transient failures (network errors,
timeouts, rate limiting and 5xx responses) with exponential backoff.
Everything else propagates on the first attempt.
"""

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from legacy_sync.client.exceptions import (
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    NetworkError,
    RequestTimeoutError,
    RateLimitError,
    ServerError,
)


class wait_retry_after(wait_base):
    """Honour a 429 Retry-After header, otherwise defer to a fallback wait.

    The header value is capped at ``max_wait`` so a misbehaving server cannot
    stall a run indefinitely.
    """

    def __init__(self, fallback: wait_base, max_wait: float):
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            return min(float(exc.retry_after), self.max_wait)
        return self.fallback(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.info(
        "retry_attempt",
        function=getattr(retry_state.fn, "__name__", None),
        attempt=retry_state.attempt_number,
        error_type=type(error).__name__ if error else None,
        error=str(error) if error else None,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
    )


def build_retrying(
    max_attempts: int = 3,
    min_wait: float = 2,
    max_wait: float = 8,
    retry_on_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
) -> AsyncRetrying:
    """Build an AsyncRetrying controller with exponential backoff.

    Args:
        max_attempts: Total attempts including the first one
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        retry_on_exceptions: Exception types that trigger a retry

    Returns:
        A fresh AsyncRetrying instance; the last exception is re-raised
        once attempts are exhausted
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_retry_after(
            wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            max_wait=max_wait,
        ),
        retry=retry_if_exception_type(retry_on_exceptions),
        before_sleep=_log_retry,
        reraise=True,
    )

