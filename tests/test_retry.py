"""Tests for the backoff helpers."""

from unittest.mock import AsyncMock

import pytest

from tunecast.utils.retry import backoff_delay, retry_async


@pytest.fixture
def sleep(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr("tunecast.utils.retry.asyncio.sleep", mock)
    return mock


class TestBackoffDelay:
    def test_doubles_until_capped(self):
        delays = [backoff_delay(n, base_delay=1.0, max_delay=5.0, jitter=False) for n in range(5)]
        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        for _ in range(20):
            assert 1.0 <= backoff_delay(1, base_delay=1.0, jitter=True) <= 3.0


class TestRetryAsync:
    """Tests for the retry_async decorator."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, sleep):
        calls = []

        @retry_async(max_retries=3, jitter=False)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_predicate_rejects_retry(self, sleep):
        calls = []

        @retry_async(should_retry=lambda e: "transient" in str(e))
        async def broken():
            calls.append(1)
            raise ValueError("permanent")

        with pytest.raises(ValueError):
            await broken()
        assert len(calls) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unlisted_exception_propagates(self, sleep):
        @retry_async(retryable_exceptions=(ConnectionError,))
        async def broken():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await broken()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reraises_after_max_retries(self, sleep):
        calls = []

        @retry_async(max_retries=2)
        async def down():
            calls.append(1)
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            await down()
        assert len(calls) == 3
        assert sleep.await_count == 2
