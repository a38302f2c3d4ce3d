"""Transport reliability helpers."""

from pr_review.llm.retry import (
    BackoffStrategy,
    ExponentialBackoff,
    FixedBackoff,
    RetryExecutor,
    RetryExecutorImpl,
    is_transient_error,
)

__all__ = [
    "BackoffStrategy",
    "ExponentialBackoff",
    "FixedBackoff",
    "RetryExecutor",
    "RetryExecutorImpl",
    "is_transient_error",
]
