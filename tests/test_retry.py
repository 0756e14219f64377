"""Tests for bounded exponential backoff."""

import pytest

from docdialogue.core.exceptions import EmbeddingError
from docdialogue.services.retry import RetryPolicy


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


class FlakyCall:
    """Fails a fixed number of times, then returns ``result``."""

    def __init__(self, failures, result="ok"):
        self.failures = failures
        self.result = result
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise EmbeddingError(f"attempt {self.attempts} failed")
        return self.result


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.mark.asyncio
async def test_succeeds_on_fourth_attempt(sleeper):
    call = FlakyCall(failures=3)
    policy = RetryPolicy(max_attempts=4, base_delay=0.4, jitter=0.2, sleep=sleeper)

    assert await policy.run(call) == "ok"
    assert call.attempts == 4
    assert len(sleeper.waits) == 3


@pytest.mark.asyncio
async def test_raises_last_error_after_four_attempts(sleeper):
    call = FlakyCall(failures=10)
    policy = RetryPolicy(max_attempts=4, base_delay=0.4, jitter=0.2, sleep=sleeper)

    with pytest.raises(EmbeddingError, match="attempt 4 failed"):
        await policy.run(call)

    assert call.attempts == 4
    # No wait after the final attempt.
    assert len(sleeper.waits) == 3


@pytest.mark.asyncio
async def test_backoff_doubles_with_bounded_jitter(sleeper):
    call = FlakyCall(failures=10)
    policy = RetryPolicy(max_attempts=4, base_delay=0.4, jitter=0.2, sleep=sleeper)

    with pytest.raises(EmbeddingError):
        await policy.run(call)

    for attempt, wait in enumerate(sleeper.waits):
        base = 0.4 * 2 ** attempt
        assert base <= wait <= base + 0.2


@pytest.mark.asyncio
async def test_first_success_does_not_sleep(sleeper):
    call = FlakyCall(failures=0)
    policy = RetryPolicy(sleep=sleeper)

    assert await policy.run(call) == "ok"
    assert sleeper.waits == []


@pytest.mark.asyncio
async def test_unlisted_exceptions_are_not_retried(sleeper):
    async def bad_input():
        raise ValueError("bad input")

    policy = RetryPolicy(exceptions=(EmbeddingError,), sleep=sleeper)

    with pytest.raises(ValueError):
        await policy.run(bad_input)
    assert sleeper.waits == []
