"""
Tests for run_with_retry.
"""
import asyncio

import pytest

from raas.core.exceptions import CommandFailedError, ProcessTimeoutError
from raas.core.retry import RetryPolicy, run_with_retry


class Flaky:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestRunWithRetry:
    """Tests for attempt counting, exception filtering and timeouts."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        operation = Flaky(2, CommandFailedError(["git", "clone"], 128, "reset"))

        result = await run_with_retry(RetryPolicy(attempts=3), operation, "git clone")

        assert result == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self):
        operation = Flaky(5, CommandFailedError(["git", "clone"], 128, "reset"))

        with pytest.raises(CommandFailedError):
            await run_with_retry(RetryPolicy(attempts=3), operation, "git clone")

        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_single_attempt_by_default(self):
        operation = Flaky(1, CommandFailedError(["yarn"], 1, "boom"))

        with pytest.raises(CommandFailedError):
            await run_with_retry(RetryPolicy(), operation, "yarn")

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_unlisted_errors_are_not_retried(self):
        operation = Flaky(1, KeyError("nope"))

        with pytest.raises(KeyError):
            await run_with_retry(
                RetryPolicy(attempts=3), operation, "lookup", retry_on=(CommandFailedError,)
            )

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_process_timeout(self):
        calls = []

        async def hang():
            calls.append(1)
            await asyncio.sleep(10)

        with pytest.raises(ProcessTimeoutError) as exc_info:
            await run_with_retry(
                RetryPolicy(attempts=2, timeout=0.01), hang, "docker ping", retry_on=(ProcessTimeoutError,)
            )

        assert len(calls) == 2
        assert "docker ping timed out" in exc_info.value.message
