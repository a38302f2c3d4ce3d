"""Error taxonomy for review invocations.

Every error a review or continuation can surface to the caller derives from
ReviewError. These are fatal to the current invocation: components never
substitute defaults for them, they propagate to the top-level caller with
message and cause preserved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class ReviewError(Exception):
    """Base class for fatal review errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownAgent(ReviewError):
    """A selected agent id is not present in the registry."""

    def __init__(self, agent_id: str, available: Sequence[str] = ()):
        self.agent_id = agent_id
        self.available = list(available)
        message = f"Unknown agent: {agent_id}"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class NoModelAvailable(ReviewError):
    """Model resolution could not produce a usable model."""


class ModelInvocationFailed(ReviewError):
    """A conversation turn failed in the transport or at the model.

    Attributes:
        cause: The underlying exception.
        attempts: Number of attempts made before giving up.
    """

    def __init__(self, cause: BaseException, attempts: int = 1, message: Optional[str] = None):
        self.cause = cause
        self.attempts = attempts
        detail = str(cause) or type(cause).__name__
        super().__init__(message or f"Model invocation failed: {detail}")


class NoPreviousSession(ReviewError):
    """Continuation was requested but no review has been persisted yet."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(
            "No previous review session found. "
            "Run a review first with: pr-review <git-diff-args>"
        )


class CorruptSession(ReviewError):
    """The persisted review session exists but cannot be read back."""

    def __init__(self, path: Path, detail: str):
        self.path = path
        super().__init__(
            f"Previous review session is unreadable ({detail}). "
            "Run a new review to replace it: pr-review <git-diff-args>"
        )


class GitError(ReviewError):
    """Retrieving the diff from git failed."""


class SecurityError(Exception):
    """Raised when a tool argument fails path or pattern validation."""

    pass
