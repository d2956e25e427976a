"""Tests for transient-error classification and backoff retry."""
import pytest
from sqlalchemy.exc import OperationalError

from reviewpool.core.retry import BackoffPolicy, is_transient_error, with_retry


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls."""

    def __init__(self, failures: int, error: Exception, result="ok"):
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


@pytest.mark.parametrize(
    "error",
    [
        ConnectionError("refused"),
        TimeoutError(),
        RuntimeError("Connection reset by peer"),
        RuntimeError("request timed out"),
        RuntimeError("ECONNREFUSED 127.0.0.1:5432"),
        OperationalError("UPDATE users", {}, Exception("database is locked")),
    ],
)
def test_transient_errors(error):
    assert is_transient_error(error)


@pytest.mark.parametrize(
    "error",
    [
        ValueError("bad input"),
        KeyError("id"),
        RuntimeError("UNIQUE constraint failed: xp_transactions.user_id"),
    ],
)
def test_permanent_errors(error):
    assert not is_transient_error(error)


def test_backoff_policy_doubles():
    policy = BackoffPolicy(initial_delay=0.5)
    assert [policy.delay_for(attempt) for attempt in range(3)] == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_with_retry_recovers_from_transient_errors():
    sleep = SleepRecorder()
    operation = Flaky(failures=2, error=ConnectionError("reset"))

    result = await with_retry(operation, sleep=sleep)

    assert result == "ok"
    assert operation.calls == 3
    assert sleep.delays == [0.25, 0.5]


@pytest.mark.asyncio
async def test_with_retry_gives_up_after_max_retries():
    sleep = SleepRecorder()
    operation = Flaky(failures=10, error=TimeoutError("timed out"))

    with pytest.raises(TimeoutError):
        await with_retry(operation, policy=BackoffPolicy(max_retries=3), sleep=sleep)

    assert operation.calls == 4
    assert len(sleep.delays) == 3


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_permanent_errors():
    sleep = SleepRecorder()
    operation = Flaky(failures=1, error=ValueError("bad input"))

    with pytest.raises(ValueError):
        await with_retry(operation, sleep=sleep)

    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_with_retry_custom_classifier():
    sleep = SleepRecorder()
    operation = Flaky(failures=1, error=ValueError("try again"))

    result = await with_retry(
        operation,
        is_retryable=lambda e: isinstance(e, ValueError),
        sleep=sleep,
    )

    assert result == "ok"
    assert operation.calls == 2
