"""Wires the review engine to application settings.

Usage:
    orchestrator = create_orchestrator(settings, output, progress)
    await orchestrator.run_review(request)

    handler = create_continuation_handler(settings, output, progress)
    await handler.continue_review("What about the retry path?", Path.cwd())
"""

from __future__ import annotations

import functools
from typing import Optional

from pr_review.agents.registry import DEFAULT_REGISTRY, AgentRegistry
from pr_review.core.settings import Settings
from pr_review.interfaces.io import OutputSink, ReviewProgress
from pr_review.providers import resolve_model
from pr_review.review.continuation import ContinuationHandler
from pr_review.review.orchestrator import ReviewOrchestrator
from pr_review.review.synthesis import SynthesisStage
from pr_review.session.conversation import ConversationDefaults


def create_orchestrator(
    settings: Settings,
    output: OutputSink,
    progress: Optional[ReviewProgress] = None,
    registry: AgentRegistry = DEFAULT_REGISTRY,
) -> ReviewOrchestrator:
    defaults = ConversationDefaults.from_settings(settings)
    synthesis = SynthesisStage(
        sessions_dir=settings.sessions_dir_path(),
        session_file=settings.session_file_path(),
        output=output,
        defaults=defaults,
        progress=progress,
    )
    return ReviewOrchestrator(
        synthesis,
        resolve_model=functools.partial(resolve_model, settings),
        registry=registry,
        defaults=defaults,
        progress=progress,
    )


def create_continuation_handler(
    settings: Settings,
    output: OutputSink,
    progress: Optional[ReviewProgress] = None,
) -> ContinuationHandler:
    return ContinuationHandler(
        session_file=settings.session_file_path(),
        output=output,
        resolve_model=functools.partial(resolve_model, settings),
        defaults=ConversationDefaults.from_settings(settings),
        progress=progress,
    )
