"""Bounded retry with exponential backoff around model calls."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import httpx

from gitbuddy.config import RetryConfig
from gitbuddy.exceptions import LLMAPIError, LLMTransportError
from gitbuddy.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

_RETRYABLE_STATUS = {429, 502, 503, 504}
_NON_RETRYABLE_STATUS = {400, 401, 403, 404}
_CONTEXT_LENGTH_MARKERS = (
    "context length",
    "context_length",
    "maximum context",
    "too many tokens",
    "token limit",
)


class ErrorKind(str, Enum):
    """How a failed model call should be treated."""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a model-call failure.

    Cancellation, auth and request errors are never retried. Transport
    failures, timeouts, rate limits and server errors are. Anything else is
    UNKNOWN and is not retried either.
    """
    if isinstance(error, asyncio.CancelledError):
        return ErrorKind.NON_RETRYABLE
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.RETRYABLE
    if isinstance(error, (LLMTransportError, httpx.TransportError)):
        return ErrorKind.RETRYABLE

    status = error.status_code if isinstance(error, LLMAPIError) else getattr(error, "status_code", None)
    if isinstance(status, int):
        if status in _RETRYABLE_STATUS or 500 <= status < 600:
            return ErrorKind.RETRYABLE
        if status in _NON_RETRYABLE_STATUS or 400 <= status < 500:
            return ErrorKind.NON_RETRYABLE

    message = str(error).lower()
    if any(marker in message for marker in _CONTEXT_LENGTH_MARKERS):
        return ErrorKind.NON_RETRYABLE
    if "timeout" in message or "timed out" in message:
        return ErrorKind.RETRYABLE
    return ErrorKind.UNKNOWN


def calculate_backoff(attempt: int, base: float, maximum: float) -> float:
    """Delay before retry number ``attempt`` (1-based): base * 2^(attempt-1), capped."""
    if attempt < 1:
        return 0.0
    return min(base * (2 ** (attempt - 1)), maximum)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    cancel_event: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with up to ``config.max_retries`` retries.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        config: Retry policy
        cancel_event: When set between attempts, the last error is raised
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's result
    """
    attempts = config.max_retries + 1 if config.enabled else 1
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = classify_error(e)
            if kind is not ErrorKind.RETRYABLE or attempt >= attempts:
                if attempt > 1:
                    log.warning("Model call failed", attempts=attempt, kind=kind.value, error=str(e))
                raise
            if cancel_event is not None and cancel_event.is_set():
                raise

            delay = calculate_backoff(attempt, config.backoff_base, config.backoff_max)
            log.info(
                "Retrying model call",
                attempt=attempt,
                max_attempts=attempts,
                delay=delay,
                error=str(e),
            )
            await sleep(delay)
            if cancel_event is not None and cancel_event.is_set():
                raise
