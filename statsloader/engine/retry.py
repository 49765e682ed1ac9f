"""Retry with jittered exponential backoff.

Delays grow as ``initial_delay * backoff_factor ** (attempt - 1)``, are capped
at ``max_delay``, perturbed by up to ``jitter_factor`` of their value and
finally clamped to ``[initial_delay / 2, max_delay]``.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import ProcessingError
from statsloader.core.logging import get_logger
from statsloader.observability.metrics import RETRY_ATTEMPTS

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Last resort for third-party errors without structured classification
RETRYABLE_MESSAGE_PATTERNS = (
    "econnreset",
    "etimedout",
    "econnrefused",
    "connection reset",
    "connection refused",
    "timed out",
    "timeout",
    "throttl",
    "too many requests",
    "service unavailable",
)


class RetryPolicy(BaseModel):
    """Retry options."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, gt=0, description="Seconds")
    max_delay: float = Field(default=30.0, gt=0, description="Seconds")
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter_factor: float = Field(default=0.3, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
            jitter_factor=settings.retry_jitter_factor,
        )

    @property
    def min_delay(self) -> float:
        return min(self.initial_delay / 2, self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Decide whether an error is worth retrying.

    Args:
        error: Caught exception

    Returns:
        True for transient failures
    """
    if isinstance(error, ProcessingError):
        return error.is_retryable

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError)):
        return True

    message = str(error).lower()
    return any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS)


def calculate_delay(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """Delay before the retry that follows ``attempt``.

    Args:
        attempt: 1-based number of the attempt that just failed
        policy: Retry options
        rng: Random source (module random if omitted)

    Returns:
        Delay in seconds
    """
    uniform = (rng or random).uniform
    exponential = policy.initial_delay * policy.backoff_factor ** (attempt - 1)
    capped = min(max(exponential, policy.min_delay), policy.max_delay)
    jittered = capped + capped * policy.jitter_factor * uniform(-1.0, 1.0)
    return min(max(jittered, policy.min_delay), policy.max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation: str = "call",
    retry_condition: Callable[[BaseException], bool] = is_retryable,
    on_retry: Callable[[int, BaseException, float], Awaitable[None] | None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """Run ``fn`` until it succeeds, fails permanently or runs out of attempts.

    The last error is re-raised unchanged so callers still see its
    classification.

    Args:
        fn: Zero-argument coroutine function
        policy: Retry options (settings defaults if omitted)
        operation: Name used in logs and metrics
        retry_condition: Predicate deciding whether an error is retried
        on_retry: Callback invoked with (attempt, error, delay) before sleeping
        sleep: Sleep function
        rng: Random source for jitter

    Returns:
        Result of ``fn``
    """
    policy = policy or RetryPolicy.from_settings()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await fn()
        except Exception as e:
            retryable = retry_condition(e)
            if attempt == policy.max_attempts or not retryable:
                logger.warning(
                    "Retry exhausted or non-retryable error",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    retryable=retryable,
                    error=str(e),
                )
                raise

            delay = calculate_delay(attempt, policy, rng)
            logger.info(
                "Retrying after delay",
                operation=operation,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            RETRY_ATTEMPTS.labels(operation=operation).inc()
            if on_retry is not None:
                outcome = on_retry(attempt, e, delay)
                if outcome is not None:
                    await outcome
            await sleep(delay)
        else:
            if attempt > 1:
                logger.info("Call succeeded after retry", operation=operation, attempt=attempt)
            return result

    raise AssertionError("unreachable")
