"""Orchestrator for concurrent review agents and the synthesis that follows."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from pr_review.agents.registry import DEFAULT_REGISTRY, AgentDescriptor, AgentRegistry
from pr_review.interfaces.io import NullReviewProgress, ReviewProgress
from pr_review.providers.base import ModelInfo
from pr_review.review.contracts import AgentReport, ModelResolver, ReportCollection, ReviewRequest
from pr_review.review.executor import AgentTaskExecutor
from pr_review.review.synthesis import SynthesisStage
from pr_review.session.conversation import ConversationDefaults, ConversationOpener

logger = logging.getLogger(__name__)


def _discard_outcome(task: "asyncio.Task[AgentReport]") -> None:
    # Siblings of a failed agent run on; retrieve their outcome so it is not
    # reported as never retrieved.
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Discarded failure of {task.get_name()}: {task.exception()!r}")


class ReviewOrchestrator:
    """Fans a review out to one agent task per selected agent, then synthesizes.

    The join is all-or-error: the first agent failure fails the review and
    synthesis never runs. Tasks already started are not cancelled; their
    results are simply dropped.
    """

    def __init__(
        self,
        synthesis: SynthesisStage,
        resolve_model: ModelResolver,
        registry: AgentRegistry = DEFAULT_REGISTRY,
        defaults: Optional[ConversationDefaults] = None,
        open_conversation: Optional[ConversationOpener] = None,
        progress: Optional[ReviewProgress] = None,
    ):
        self.synthesis = synthesis
        self.registry = registry
        self.defaults = defaults or ConversationDefaults()
        self._resolve_model = resolve_model
        self._open = open_conversation
        self.progress = progress or NullReviewProgress()

    def select_agents(self, request: ReviewRequest) -> List[AgentDescriptor]:
        """Validate the requested ids against the registry.

        Raises:
            UnknownAgent: For the first id that is not registered
        """
        return [self.registry.get(agent_id) for agent_id in request.agent_ids()]

    async def run_review(self, request: ReviewRequest) -> ReportCollection:
        """Run all selected agents concurrently, then stream the synthesis.

        Args:
            request: The review to perform

        Returns:
            The agent reports in request order

        Raises:
            UnknownAgent: Before any agent starts
            NoModelAvailable: Before any agent starts
            ModelInvocationFailed: From the first failing agent or from synthesis
        """
        descriptors = self.select_agents(request)

        model = await self._resolve_model(request.model_selector)
        logger.info(f"Using model {model.qualified_id}")
        self.progress.model_resolved(model)

        reports = await self.run_agents(descriptors, request, model)
        self.progress.agents_completed(len(reports))

        await self.synthesis.synthesize(
            request.diff_text,
            reports,
            model=model,
            working_directory=request.working_directory,
        )
        return reports

    async def run_agents(
        self,
        descriptors: List[AgentDescriptor],
        request: ReviewRequest,
        model: ModelInfo,
    ) -> ReportCollection:
        """Run every agent concurrently and join with fail-fast semantics."""
        executor = AgentTaskExecutor(
            model,
            defaults=self.defaults,
            open_conversation=self._open,
            progress=self.progress,
        )
        total = len(descriptors)
        completed = 0

        async def run_one(descriptor: AgentDescriptor) -> AgentReport:
            nonlocal completed
            logger.info(f"[{descriptor.id}] Starting agent")
            report = await executor.run(descriptor, request)
            completed += 1
            logger.info(f"[{descriptor.id}] Finished ({len(report.text)} chars)")
            self.progress.agent_completed(descriptor, completed, total)
            return report

        logger.info(f"Starting parallel review with {total} agents")
        self.progress.agents_started(descriptors)

        tasks: Dict[str, "asyncio.Task[AgentReport]"] = {
            descriptor.id: asyncio.create_task(run_one(descriptor), name=f"agent:{descriptor.id}")
            for descriptor in descriptors
        }
        done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)

        failures = [
            task.exception()
            for task in tasks.values()
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            for task in pending:
                task.add_done_callback(_discard_outcome)
            logger.info(
                f"Review failed: {len(failures)} agent(s) failed, "
                f"{len(pending)} still running and discarded"
            )
            raise failures[0]

        cancelled = [agent_id for agent_id, task in tasks.items() if task.cancelled()]
        if cancelled:
            raise asyncio.CancelledError(f"Agent tasks cancelled: {', '.join(cancelled)}")

        logger.info(f"All {total} agents completed")
        return ReportCollection(
            list(tasks),
            {agent_id: task.result() for agent_id, task in tasks.items()},
        )
