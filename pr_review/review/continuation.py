"""Follow-up questions against the last synthesized review."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pr_review.agents.registry import SYNTHESIS_INSTRUCTIONS
from pr_review.core.exceptions import CorruptSession, NoPreviousSession
from pr_review.interfaces.io import NullReviewProgress, OutputSink, ReviewProgress
from pr_review.review.contracts import ModelResolver
from pr_review.review.synthesis import StreamForwarder
from pr_review.session.conversation import Conversation, ConversationDefaults, ConversationOpener
from pr_review.session.log import SessionLog
from pr_review.tools import ToolAccess

logger = logging.getLogger(__name__)


class ContinuationHandler:
    """Appends one exchange to the conversation at the well-known pointer.

    The log is reopened in place, so the new turn lands in the pointer
    file itself and no promotion step follows.
    """

    def __init__(
        self,
        session_file: Path,
        output: OutputSink,
        resolve_model: ModelResolver,
        defaults: Optional[ConversationDefaults] = None,
        open_conversation: Optional[ConversationOpener] = None,
        progress: Optional[ReviewProgress] = None,
        instructions: str = SYNTHESIS_INSTRUCTIONS,
    ):
        self.session_file = Path(session_file)
        self.output = output
        self._resolve_model = resolve_model
        self.defaults = defaults or ConversationDefaults()
        self._open = open_conversation or Conversation.open
        self.progress = progress or NullReviewProgress()
        self.instructions = instructions

    async def continue_review(
        self,
        message: str,
        working_directory: Path,
        model_selector: Optional[str] = None,
    ) -> str:
        """Send message as a follow-up and stream the answer.

        Returns:
            The assistant's answer

        Raises:
            NoPreviousSession: If no review has been synthesized yet
            CorruptSession: If the persisted session cannot be parsed
            NoModelAvailable: If no model can be resolved
            ModelInvocationFailed: If the exchange fails; the log is unchanged
        """
        if not self.session_file.exists():
            raise NoPreviousSession(self.session_file)

        model = await self._resolve_model(model_selector)
        self.progress.model_resolved(model)

        try:
            log = await SessionLog.open(self.session_file)
        except FileNotFoundError as e:
            raise NoPreviousSession(self.session_file) from e
        except ValueError as e:
            raise CorruptSession(self.session_file, str(e)) from e

        config = self.defaults.config(
            working_directory=working_directory,
            model=model,
            system_prompt=self.instructions,
            tool_access=ToolAccess.NONE,
            log=log,
        )
        conversation = await self._open(config)
        logger.info(f"Continuing session {log.header.id} ({len(log)} turns)")
        self.progress.session_loaded()

        conversation.subscribe(StreamForwarder(self.output, self.progress))
        try:
            return await conversation.prompt(message)
        finally:
            conversation.dispose()
