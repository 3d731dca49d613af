"""
Failure-policy helper tests.
"""
import asyncio

import pytest

from arena_trader.resilience import RetryConfig, best_effort, best_effort_sync, jittered_backoff, with_retry


class TestBestEffort:

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def ok():
            return 42
        assert await best_effort(ok, "answer") == 42

    @pytest.mark.asyncio
    async def test_swallows_errors(self):
        async def boom():
            raise RuntimeError("store offline")
        assert await best_effort(boom, "store write", default=[]) == []

    @pytest.mark.asyncio
    async def test_bounded_by_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)
        assert await best_effort(slow, "slow write", timeout=0.01, default="skipped") == "skipped"

    def test_sync_variant(self):
        def boom():
            raise OSError("disk full")
        assert best_effort_sync(boom, "audit write") is None
        assert best_effort_sync(lambda: "ok", "audit write") == "ok"


class TestRetry:

    def test_backoff_is_capped(self):
        for attempt in range(10):
            delay = jittered_backoff(attempt, base_delay=1.0, max_delay=5.0)
            assert 0.1 <= delay <= 5.0

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "done"

        config = RetryConfig(max_attempts=3, base_delay_sec=0.001, max_delay_sec=0.001)
        assert await with_retry(flaky, "flaky call", config) == "done"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        async def down():
            raise ConnectionError("refused")

        config = RetryConfig(max_attempts=2, base_delay_sec=0.001, max_delay_sec=0.001)
        with pytest.raises(ConnectionError):
            await with_retry(down, "down call", config)

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self):
        calls = []

        async def bad():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await with_retry(bad, "bad call", RetryConfig(base_delay_sec=0.001))
        assert len(calls) == 1
