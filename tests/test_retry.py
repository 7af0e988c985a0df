"""Tests for the retry wrapper."""

import pytest

from trial_harvest.errors import FetchError, TransientFetchError
from trial_harvest.ingestion.retry import RetryPolicy, with_retry


class Flaky:
    """Coroutine factory that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or TransientFetchError("HTTP 503")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class SleepRecorder:
    """Records requested delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self) -> None:
        op = Flaky(failures=0)
        sleep = SleepRecorder()

        assert await with_retry(op, 3, 2.0, sleep=sleep) == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self) -> None:
        """Two failures then a success means three attempts and two waits."""
        op = Flaky(failures=2)
        sleep = SleepRecorder()

        assert await with_retry(op, 3, 2.0, sleep=sleep) == "ok"
        assert op.calls == 3
        assert sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        """An operation that always fails is attempted exactly max_attempts times."""
        op = Flaky(failures=100)
        sleep = SleepRecorder()

        with pytest.raises(TransientFetchError):
            await with_retry(op, 4, 0.5, sleep=sleep)

        assert op.calls == 4
        assert sleep.delays == [0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self) -> None:
        op = Flaky(failures=1)
        sleep = SleepRecorder()

        with pytest.raises(TransientFetchError):
            await with_retry(op, 1, 2.0, sleep=sleep)
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self) -> None:
        op = Flaky(failures=1, error=FetchError("HTTP 404"))
        sleep = SleepRecorder()

        with pytest.raises(FetchError):
            await with_retry(op, 3, 2.0, retry_on=(TransientFetchError,), sleep=sleep)
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            await with_retry(Flaky(failures=0), 0, 1.0)


class TestRetryPolicy:
    """Tests for the reusable policy."""

    @pytest.mark.asyncio
    async def test_run_uses_policy_settings(self) -> None:
        sleep = SleepRecorder()
        policy = RetryPolicy(max_attempts=2, delay=0.25, retry_on=(TransientFetchError,), sleep=sleep)
        op = Flaky(failures=1)

        assert await policy.run(op, description="page") == "ok"
        assert op.calls == 2
        assert sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_run_logs_warning_on_retry(self, caplog: pytest.LogCaptureFixture) -> None:
        policy = RetryPolicy(max_attempts=2, delay=0.0, sleep=SleepRecorder())

        await policy.run(Flaky(failures=1), description="search 1/1/2021-2/1/2021")

        assert "search 1/1/2021-2/1/2021 failed" in caplog.text
        assert "1 attempt(s) remaining" in caplog.text
