"""Synthesis stage: merge agent reports into one streamed, persisted review."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from pr_review.agents.registry import SYNTHESIS_INSTRUCTIONS
from pr_review.interfaces.io import NullReviewProgress, OutputSink, ReviewProgress
from pr_review.providers.base import ModelInfo
from pr_review.review.contracts import AgentReport
from pr_review.review.prompts import build_synthesis_prompt
from pr_review.session.conversation import Conversation, ConversationDefaults, ConversationOpener
from pr_review.session.log import SessionLog, promote_session
from pr_review.tools import ToolAccess

logger = logging.getLogger(__name__)


class StreamForwarder:
    """Fragment handler that writes straight to an output sink.

    Notifies progress once, right before the first fragment is written.
    """

    def __init__(self, output: OutputSink, progress: ReviewProgress):
        self.output = output
        self.progress = progress
        self.started = False

    def __call__(self, delta: str) -> None:
        if not self.started:
            self.started = True
            self.progress.output_started()
        self.output.write(delta)


class SynthesisStage:
    """Drives the durable synthesis conversation.

    A fresh log is created under ``sessions_dir``. Only after the synthesis
    exchange succeeds is it copied onto ``session_file``, the well-known
    pointer used by continuation. A failed synthesis leaves the pointer as
    it was.
    """

    def __init__(
        self,
        sessions_dir: Path,
        session_file: Path,
        output: OutputSink,
        defaults: Optional[ConversationDefaults] = None,
        open_conversation: Optional[ConversationOpener] = None,
        progress: Optional[ReviewProgress] = None,
        instructions: str = SYNTHESIS_INSTRUCTIONS,
    ):
        self.sessions_dir = Path(sessions_dir)
        self.session_file = Path(session_file)
        self.output = output
        self.defaults = defaults or ConversationDefaults()
        self._open = open_conversation or Conversation.open
        self.progress = progress or NullReviewProgress()
        self.instructions = instructions

    async def synthesize(
        self,
        diff_text: str,
        reports: Mapping[str, AgentReport],
        model: ModelInfo,
        working_directory: Path,
    ) -> Path:
        """Stream the synthesized review to the output sink and persist it.

        Returns:
            Path of the well-known pointer after promotion

        Raises:
            ModelInvocationFailed: If the synthesis exchange fails
        """
        log = await SessionLog.create(self.sessions_dir, working_directory)
        config = self.defaults.config(
            working_directory=working_directory,
            model=model,
            system_prompt=self.instructions,
            tool_access=ToolAccess.NONE,
            log=log,
        )
        conversation = await self._open(config)
        conversation.subscribe(StreamForwarder(self.output, self.progress))

        prompt = build_synthesis_prompt(diff_text, reports)
        logger.info(f"Synthesizing {len(reports)} reports ({len(prompt)} chars prompt)")
        self.progress.synthesis_started()

        try:
            await conversation.prompt(prompt)
        finally:
            conversation.dispose()

        promote_session(log.path, self.session_file)
        return self.session_file
