"""RetryExecutor pattern for handling transient transport failures.

RetryExecutor provides automatic retry with exponential backoff for
operations that may fail temporarily. Retries are bounded by a small fixed
count; once exhausted, the last error is re-raised unchanged so the caller
can wrap it with its own context.

This module provides:
- BackoffStrategy protocol with exponential and fixed implementations
- RetryExecutor protocol and RetryExecutorImpl
- is_transient_error() classification for provider errors
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, runtime_checkable

import httpx

from pr_review.providers.base import ProviderError


logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Error classification
# =============================================================================


def is_transient_error(error: BaseException) -> bool:
    """Return True when retrying the same request may succeed.

    Timeouts, connection-level failures and provider errors flagged as
    retryable (HTTP 408/409/429/5xx, overload events) are transient.
    Everything else is permanent.
    """
    if isinstance(error, ProviderError):
        return error.retryable
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status in (408, 409, 429) or status >= 500
    return False


# =============================================================================
# BackoffStrategy Protocol
# =============================================================================


@runtime_checkable
class BackoffStrategy(Protocol):
    """Protocol for backoff strategies.

    Defines how delay increases between retry attempts.
    """

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt.

        Args:
            attempt: Attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        ...


class ExponentialBackoff:
    """Exponential backoff strategy.

    Delay grows exponentially: delay = base_delay_ms * (exponential_base ** attempt)

    Example:
        backoff = ExponentialBackoff(base_delay_ms=500, max_delay_ms=8000)
        # Attempt 0: 500ms
        # Attempt 1: 1000ms
        # Attempt 2: 2000ms
    """

    def __init__(
        self,
        base_delay_ms: float = 500.0,
        max_delay_ms: float = 8000.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        self._base_delay_ms = base_delay_ms
        self._max_delay_ms = max_delay_ms
        self._exponential_base = exponential_base
        self._jitter = jitter

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt."""
        delay = self._base_delay_ms * (self._exponential_base**attempt)
        delay = min(delay, self._max_delay_ms)

        if self._jitter:
            jitter_amount = delay * 0.1  # 10% jitter
            delay += random.uniform(-jitter_amount, jitter_amount)

        return delay


class FixedBackoff:
    """Fixed backoff strategy: delay remains constant."""

    def __init__(self, delay_ms: float = 500.0):
        self._delay_ms = delay_ms

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt."""
        return self._delay_ms


# =============================================================================
# RetryExecutor
# =============================================================================


@runtime_checkable
class RetryExecutor(Protocol):
    """Protocol for retry executor.

    Example:
        executor = RetryExecutorImpl(max_retries=2)
        response = await executor.execute(lambda: provider_call(messages))
    """

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        can_retry: Optional[Callable[[], bool]] = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Zero-argument coroutine function, called once per attempt.
            can_retry: Optional predicate consulted after a transient failure;
                returning False gives up immediately.

        Returns:
            The operation's result.

        Raises:
            The last error raised by operation once retries are exhausted
            or the error is permanent.
        """
        ...

    def get_attempt_count(self) -> int:
        """Get number of attempts for last execution."""
        ...


class RetryExecutorImpl:
    """Retry executor implementation for fault-tolerant transport calls.

    Makes at most ``max_retries + 1`` attempts. Only errors accepted by
    ``is_transient`` are retried; permanent errors propagate on the first
    attempt.
    """

    def __init__(
        self,
        max_retries: int = 2,
        backoff: Optional[BackoffStrategy] = None,
        is_transient: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize retry executor.

        Args:
            max_retries: Automatic retries after the first attempt.
            backoff: Backoff strategy (ExponentialBackoff if None).
            is_transient: Classifier deciding which errors are retried.
            sleep: Awaitable sleep function, replaceable in tests.
        """
        self._max_retries = max_retries
        self._backoff = backoff or ExponentialBackoff()
        self._is_transient = is_transient
        self._sleep = sleep

        self._stats: dict[str, Any] = {
            "total_calls": 0,
            "successful_calls": 0,
            "failed_calls": 0,
            "total_attempts": 0,
            "last_attempt_count": 0,
        }

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        can_retry: Optional[Callable[[], bool]] = None,
    ) -> T:
        """Execute operation with retry logic."""
        self._stats["total_calls"] += 1
        self._stats["last_attempt_count"] = 0
        max_attempts = self._max_retries + 1

        for attempt in range(max_attempts):
            self._stats["total_attempts"] += 1
            self._stats["last_attempt_count"] = attempt + 1

            try:
                result = await operation()
            except Exception as e:
                retryable = self._is_transient(e) and (can_retry is None or can_retry())
                if not retryable or attempt == max_attempts - 1:
                    self._stats["failed_calls"] += 1
                    raise

                delay_s = self._backoff.calculate_delay(attempt) / 1000.0
                logger.warning(
                    f"Transient failure on attempt {attempt + 1}/{max_attempts}: {e}; "
                    f"retrying in {delay_s:.2f}s"
                )
                await self._sleep(delay_s)
                continue

            self._stats["successful_calls"] += 1
            return result

        raise AssertionError("unreachable")

    def get_attempt_count(self) -> int:
        """Get number of attempts for last execution."""
        return self._stats["last_attempt_count"]

    def get_stats(self) -> dict[str, Any]:
        """Get retry statistics."""
        return self._stats.copy()
