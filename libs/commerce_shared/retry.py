# libs/commerce_shared/retry.py
"""
Retry-with-backoff executor for fallible remote operations.

The backoff is deterministic (no jitter). Callers sharing one backend that
fail at the same moment will retry in lockstep.
"""

import asyncio
from typing import Awaitable, Callable, FrozenSet, Optional, TypeVar

import httpx
from pydantic import BaseModel, Field

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class RetryPolicy(BaseModel):
    """How often and how patiently an operation is retried."""

    max_attempts: int = Field(3, ge=1, description="Total attempts, first call included")
    initial_delay: float = Field(1.0, ge=0, description="Seconds before the first retry")
    max_delay: float = Field(5.0, ge=0, description="Upper bound for any single delay")
    backoff_factor: float = Field(2.0, ge=1, description="Delay multiplier per attempt")
    retryable_statuses: FrozenSet[int] = Field(default=DEFAULT_RETRYABLE_STATUSES)

    model_config = {"frozen": True}


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retryable operation has failed."""

    def __init__(self, attempts: int, cause: BaseException):
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Operation failed after {attempts} attempts: {cause}")


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """
    Decide whether a failure is transient.

    Timeouts and connection-level transport errors are retryable, as are HTTP
    responses whose status is in the policy's retryable set.
    """
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in policy.retryable_statuses
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Execute an idempotent (or safe-to-repeat) async operation with retries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy, defaults to ``RetryPolicy()``
        sleep: Awaitable used between attempts (injectable for tests)
        description: Label used in log lines

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: If all attempts failed with retryable errors
        Exception: Any non-retryable error, unchanged, on first occurrence
    """
    policy = policy or RetryPolicy()
    delay = min(policy.initial_delay, policy.max_delay)

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e, policy):
                raise

            if attempt == policy.max_attempts:
                logger.error(
                    f"{description} failed after {attempt} attempts",
                    extra={"attempts": attempt, "error": str(e)},
                )
                raise RetryExhaustedError(attempt, e) from e

            logger.warning(
                f"{description} attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"attempt": attempt, "delay": delay, "error": str(e)},
            )
            await sleep(delay)
            delay = min(delay * policy.backoff_factor, policy.max_delay)

    # max_attempts >= 1 guarantees the loop returns or raises
    raise RuntimeError("unreachable")
