"""Exponential-backoff retry for transient storage failures."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3

TRANSIENT_MARKERS = (
    "connection reset",
    "timeout",
    "timed out",
    "socket",
    "network",
    "fetch failed",
    "econnreset",
    "etimedout",
    "econnrefused",
    "server has closed the connection",
    "server closed the connection",
    "connection terminated unexpectedly",
    "can't reach database server",
    "database is locked",
)


@dataclass(frozen=True)
class BackoffPolicy:
    """How often and how long to wait between attempts.

    The delay before retry ``n`` (0-based) is ``initial_delay * multiplier ** n``.
    """
    max_retries: int = MAX_RETRIES
    initial_delay: float = 0.25
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (self.multiplier ** attempt)


def is_transient_error(error: BaseException) -> bool:
    """Classify an error as safe to retry.

    Connection and timeout errors, invalidated DBAPI connections and any
    error whose message mentions a known network failure are transient.
    Everything else is not.
    """
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True

    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: Optional[BackoffPolicy] = None,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` and retry it on transient errors.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Backoff policy, defaults to 3 retries from 0.25s
        is_retryable: Decides whether an error may be retried
        sleep: Awaitable used to wait between attempts
        label: Name used in log messages

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted, or any non-retryable
        error immediately
    """
    policy = policy or BackoffPolicy()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_retries or not is_retryable(e):
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Transient error on {label} (attempt {attempt + 1}/{policy.max_retries + 1}). "
                f"Retrying in {delay:.2f}s: {e}"
            )
            await sleep(delay)
            attempt += 1
