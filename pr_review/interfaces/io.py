"""I/O protocols consumed by the review engine.

The engine writes the synthesized report to an OutputSink and reports
progress through a ReviewProgress handler. Both are implemented by the
calling shell; NullReviewProgress serves callers that want no progress
reporting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pr_review.agents.registry import AgentDescriptor
    from pr_review.providers.base import ModelInfo


@runtime_checkable
class OutputSink(Protocol):
    """Append-only text stream the report is written to as it arrives."""

    def write(self, text: str) -> None:
        """Append text. Must not buffer beyond what the medium requires."""
        ...


@runtime_checkable
class ReviewProgress(Protocol):
    """Progress notifications for a review or continuation.

    Agent completions are reported in completion order, which is unrelated
    to the order reports are aggregated in.
    """

    def model_resolved(self, model: "ModelInfo") -> None:
        """The model for this invocation has been chosen."""
        ...

    def agents_started(self, agents: List["AgentDescriptor"]) -> None:
        """Fan-out has begun for the given agents."""
        ...

    def agent_fragment(self, agent: "AgentDescriptor", delta: str) -> None:
        """An agent produced a text fragment."""
        ...

    def agent_completed(self, agent: "AgentDescriptor", completed: int, total: int) -> None:
        """One agent finished; completed counts finished agents so far."""
        ...

    def agents_completed(self, total: int) -> None:
        """All agents finished successfully."""
        ...

    def synthesis_started(self) -> None:
        """The synthesis conversation has been opened and prompted."""
        ...

    def session_loaded(self) -> None:
        """A persisted conversation has been reopened for continuation."""
        ...

    def output_started(self) -> None:
        """The first fragment of streamed output is about to be written."""
        ...


class NullReviewProgress(ReviewProgress):
    """Null object for ReviewProgress.

    Provides a safe default when no progress handler is supplied.
    All methods are no-ops.
    """

    def model_resolved(self, model: "ModelInfo") -> None:
        pass

    def agents_started(self, agents: List["AgentDescriptor"]) -> None:
        pass

    def agent_fragment(self, agent: "AgentDescriptor", delta: str) -> None:
        pass

    def agent_completed(self, agent: "AgentDescriptor", completed: int, total: int) -> None:
        pass

    def agents_completed(self, total: int) -> None:
        pass

    def synthesis_started(self) -> None:
        pass

    def session_loaded(self) -> None:
        pass

    def output_started(self) -> None:
        pass
