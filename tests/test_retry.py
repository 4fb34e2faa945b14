"""Tests for the generic retry executor."""

import asyncio
from typing import List

import pytest
from hypothesis import given, settings, strategies as st

from modelsync.sync.models import RetryAttemptContext
from modelsync.sync.retry import RetryExecutor, RetryPolicy


class RecordingSleep:
    """Sleep replacement that records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


def flaky(failures: int, result="ok"):
    """Operation that fails ``failures`` times before returning ``result``."""
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise RuntimeError(f"failure {calls['count']}")
        return result

    return operation, calls


class TestRetryCounts:

    @given(st.integers(min_value=0, max_value=10))
    @settings(max_examples=25)
    def test_call_and_observer_counts(self, failures):
        """At most max_attempts + 1 calls; on_retry fires min(failures, 5) times."""
        async def run_test():
            sleep = RecordingSleep()
            executor = RetryExecutor(sleep=sleep)
            operation, calls = flaky(failures)
            observed: List[RetryAttemptContext] = []

            try:
                result = await executor.execute(operation, RetryPolicy(max_attempts=5),
                                                on_retry=observed.append)
                assert failures <= 5
                assert result == "ok"
            except RuntimeError:
                assert failures > 5

            assert calls["count"] == min(failures + 1, 6)
            assert len(observed) == min(failures, 5)
            assert [c.attempt_number for c in observed] == list(range(1, len(observed) + 1))
            assert len(sleep.delays) == len(observed)

        asyncio.run(run_test())

    def test_succeeds_first_time_without_delay(self):
        """Test that an immediate success returns without sleeping."""
        async def run_test():
            sleep = RecordingSleep()
            operation, calls = flaky(0, result=42)

            assert await RetryExecutor(sleep=sleep).execute(operation) == 42
            assert calls["count"] == 1
            assert sleep.delays == []

        asyncio.run(run_test())


class TestRetryFailures:

    def test_exhaustion_reraises_last_error_unchanged(self):
        """Test that the final failure is re-raised as the same exception object."""
        errors = [ValueError(f"e{i}") for i in range(3)]

        async def operation():
            raise errors.pop(0)

        async def run_test():
            executor = RetryExecutor(sleep=RecordingSleep())
            with pytest.raises(ValueError) as info:
                await executor.execute(operation, RetryPolicy(max_attempts=2))
            assert str(info.value) == "e2"
            assert errors == []

        asyncio.run(run_test())

    def test_should_retry_false_propagates_immediately(self):
        """Test that a rejected error propagates without delay or observer call."""
        async def run_test():
            sleep = RecordingSleep()
            operation, calls = flaky(3)
            observed = []

            with pytest.raises(RuntimeError, match="failure 1"):
                await RetryExecutor(sleep=sleep).execute(
                    operation, should_retry=lambda e: False, on_retry=observed.append
                )

            assert calls["count"] == 1
            assert observed == []
            assert sleep.delays == []

        asyncio.run(run_test())

    def test_zero_max_attempts_tries_once(self):
        """Test that max_attempts=0 means a single try."""
        async def run_test():
            operation, calls = flaky(1)
            with pytest.raises(RuntimeError):
                await RetryExecutor(sleep=RecordingSleep()).execute(operation, RetryPolicy(max_attempts=0))
            assert calls["count"] == 1

        asyncio.run(run_test())

    def test_observer_errors_do_not_stop_retries(self):
        """Test that a failing on_retry observer is logged and ignored."""
        async def run_test():
            operation, calls = flaky(2)

            def broken_observer(context):
                raise RuntimeError("observer broke")

            result = await RetryExecutor(sleep=RecordingSleep()).execute(operation, on_retry=broken_observer)
            assert result == "ok"
            assert calls["count"] == 3

        asyncio.run(run_test())


class TestRetryDelays:

    def test_delays_follow_policy_in_seconds(self):
        """Test that backoff delays in milliseconds are slept as seconds."""
        async def run_test():
            sleep = RecordingSleep()
            operation, _ = flaky(6)
            policy = RetryPolicy(max_attempts=5, base_delay_ms=1000, max_delay_ms=30000, jitter=False)
            observed = []

            with pytest.raises(RuntimeError):
                await RetryExecutor(sleep=sleep).execute(operation, policy, on_retry=observed.append)

            assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
            assert [c.computed_delay for c in observed] == [1000, 2000, 4000, 8000, 16000]
            assert all(isinstance(c.error, RuntimeError) for c in observed)

        asyncio.run(run_test())

    def test_independent_executions_do_not_share_state(self):
        """Test that concurrent executions on one executor keep separate counters."""
        async def run_test():
            executor = RetryExecutor(sleep=RecordingSleep())
            first, first_calls = flaky(2, result="first")
            second, second_calls = flaky(4, result="second")

            results = await asyncio.gather(executor.execute(first), executor.execute(second))

            assert results == ["first", "second"]
            assert first_calls["count"] == 3
            assert second_calls["count"] == 5

        asyncio.run(run_test())

    def test_cancellation_interrupts_pending_delay(self):
        """Test that cancelling the task stops a pending backoff delay."""
        async def run_test():
            operation, calls = flaky(10)
            policy = RetryPolicy(base_delay_ms=60_000, max_delay_ms=60_000, jitter=False)
            task = asyncio.create_task(RetryExecutor().execute(operation, policy))

            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert calls["count"] == 1

        asyncio.run(run_test())
