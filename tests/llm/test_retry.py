"""Tests for bounded transport retry with backoff."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from pr_review.llm.retry import (
    BackoffStrategy,
    ExponentialBackoff,
    FixedBackoff,
    RetryExecutor,
    RetryExecutorImpl,
    is_transient_error,
)
from pr_review.providers.base import ProviderError


# =============================================================================
# BackoffStrategy Tests
# =============================================================================


class TestExponentialBackoff:
    def test_delay_doubles_each_attempt(self):
        backoff = ExponentialBackoff(base_delay_ms=100, max_delay_ms=5000, jitter=False)

        assert backoff.calculate_delay(0) == 100.0
        assert backoff.calculate_delay(1) == 200.0
        assert backoff.calculate_delay(2) == 400.0

    def test_delay_capped_at_max(self):
        backoff = ExponentialBackoff(base_delay_ms=100, max_delay_ms=500, jitter=False)

        assert backoff.calculate_delay(10) == 500.0

    def test_jitter_stays_within_ten_percent(self):
        backoff = ExponentialBackoff(base_delay_ms=100, max_delay_ms=5000, jitter=True)

        for _ in range(20):
            assert 180 <= backoff.calculate_delay(1) <= 220

    def test_satisfies_protocol(self):
        assert isinstance(ExponentialBackoff(), BackoffStrategy)
        assert isinstance(FixedBackoff(), BackoffStrategy)


class TestFixedBackoff:
    def test_delay_is_constant(self):
        backoff = FixedBackoff(delay_ms=250)

        assert backoff.calculate_delay(0) == 250
        assert backoff.calculate_delay(5) == 250


# =============================================================================
# Error classification
# =============================================================================


class TestIsTransientError:
    def test_retryable_provider_error(self):
        assert is_transient_error(ProviderError("overloaded", status_code=529, retryable=True))

    def test_permanent_provider_error(self):
        assert not is_transient_error(ProviderError("bad request", status_code=400))

    def test_transport_errors_are_transient(self):
        assert is_transient_error(httpx.ConnectError("refused"))
        assert is_transient_error(httpx.ReadTimeout("slow"))

    @pytest.mark.parametrize("status, expected", [(429, True), (503, True), (401, False), (404, False)])
    def test_http_status_errors(self, status, expected):
        request = httpx.Request("POST", "https://api.example.invalid/v1/messages")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("failed", request=request, response=response)

        assert is_transient_error(error) is expected

    def test_other_errors_are_permanent(self):
        assert not is_transient_error(ValueError("nope"))


# =============================================================================
# RetryExecutor Tests
# =============================================================================


class TestRetryExecutorImpl:
    @pytest.fixture
    def sleep(self):
        return AsyncMock()

    def test_satisfies_protocol(self):
        assert isinstance(RetryExecutorImpl(), RetryExecutor)

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, sleep):
        executor = RetryExecutorImpl(max_retries=2, sleep=sleep)
        operation = AsyncMock(return_value="done")

        assert await executor.execute(operation) == "done"
        assert executor.get_attempt_count() == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, sleep):
        executor = RetryExecutorImpl(max_retries=2, backoff=FixedBackoff(100), sleep=sleep)
        operation = AsyncMock(side_effect=[httpx.ConnectError("refused"), "done"])

        assert await executor.execute(operation) == "done"
        assert executor.get_attempt_count() == 2
        sleep.assert_awaited_once_with(0.1)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, sleep):
        executor = RetryExecutorImpl(max_retries=2, sleep=sleep)
        error = ProviderError("overloaded", retryable=True)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(ProviderError) as exc_info:
            await executor.execute(operation)

        assert exc_info.value is error
        assert operation.await_count == 3
        assert executor.get_attempt_count() == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, sleep):
        executor = RetryExecutorImpl(max_retries=2, sleep=sleep)
        operation = AsyncMock(side_effect=ProviderError("unauthorized", status_code=401))

        with pytest.raises(ProviderError):
            await executor.execute(operation)

        assert operation.await_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_can_retry_predicate_stops_retries(self, sleep):
        executor = RetryExecutorImpl(max_retries=2, sleep=sleep)
        operation = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(httpx.ConnectError):
            await executor.execute(operation, can_retry=lambda: False)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_stats_track_calls(self, sleep):
        executor = RetryExecutorImpl(max_retries=1, sleep=sleep)

        await executor.execute(AsyncMock(return_value=1))
        with pytest.raises(ValueError):
            await executor.execute(AsyncMock(side_effect=ValueError("x")))

        stats = executor.get_stats()
        assert stats["total_calls"] == 2
        assert stats["successful_calls"] == 1
        assert stats["failed_calls"] == 1
