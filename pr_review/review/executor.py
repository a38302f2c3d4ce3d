"""Runs one review agent to completion."""

from __future__ import annotations

import logging
from typing import List, Optional

from pr_review.agents.registry import AgentDescriptor
from pr_review.interfaces.io import NullReviewProgress, ReviewProgress
from pr_review.providers.base import ModelInfo
from pr_review.review.contracts import AgentReport, ReviewRequest
from pr_review.review.prompts import build_agent_prompt
from pr_review.session.conversation import Conversation, ConversationDefaults, ConversationOpener
from pr_review.tools import ToolAccess

logger = logging.getLogger(__name__)


class AgentTaskExecutor:
    """Runs a single agent in its own ephemeral, read-only conversation.

    Agents never share a conversation, so no agent sees another agent's
    output. The executor does not retry; bounded transport retries happen
    inside the conversation.
    """

    def __init__(
        self,
        model: ModelInfo,
        defaults: Optional[ConversationDefaults] = None,
        open_conversation: Optional[ConversationOpener] = None,
        progress: Optional[ReviewProgress] = None,
    ):
        self.model = model
        self.defaults = defaults or ConversationDefaults()
        self._open = open_conversation or Conversation.open
        self.progress = progress or NullReviewProgress()

    async def run(self, descriptor: AgentDescriptor, request: ReviewRequest) -> AgentReport:
        """Review request.diff_text as the given agent.

        Returns:
            AgentReport holding every text fragment the agent produced

        Raises:
            ModelInvocationFailed: If the agent's conversation fails
        """
        config = self.defaults.config(
            working_directory=request.working_directory,
            model=self.model,
            system_prompt=descriptor.instructions,
            tool_access=ToolAccess.READ_ONLY,
        )
        conversation = await self._open(config)

        chunks: List[str] = []

        def on_fragment(delta: str) -> None:
            chunks.append(delta)
            self.progress.agent_fragment(descriptor, delta)

        conversation.subscribe(on_fragment)
        prompt = build_agent_prompt(request.diff_text, request.extra_context)
        logger.debug(f"[{descriptor.id}] Prompt built ({len(prompt)} chars)")

        try:
            await conversation.prompt(prompt)
        finally:
            conversation.dispose()

        return AgentReport(agent_id=descriptor.id, text="".join(chunks))
