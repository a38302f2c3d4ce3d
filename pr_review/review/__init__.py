"""Review engine: concurrent agents, synthesis and continuation."""

from pr_review.review.continuation import ContinuationHandler
from pr_review.review.contracts import AgentReport, ReportCollection, ReviewRequest
from pr_review.review.executor import AgentTaskExecutor
from pr_review.review.orchestrator import ReviewOrchestrator
from pr_review.review.service import create_continuation_handler, create_orchestrator
from pr_review.review.synthesis import SynthesisStage

__all__ = [
    "AgentReport",
    "AgentTaskExecutor",
    "ContinuationHandler",
    "ReportCollection",
    "ReviewOrchestrator",
    "ReviewRequest",
    "SynthesisStage",
    "create_continuation_handler",
    "create_orchestrator",
]
