"""Conversation handle over one model-invocation session.

A Conversation pairs a system prompt, a tool capability set and a
SessionLog (ephemeral or durable). Each ``prompt`` call runs one complete
exchange: the model is streamed, requested tools are executed and fed back,
and the loop continues until the model answers without tool calls. Text
fragments are pushed to subscribers as they arrive; the finished exchange
is then appended to the log as one turn.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from pr_review.core.exceptions import ModelInvocationFailed, ReviewError
from pr_review.llm.retry import RetryExecutor, RetryExecutorImpl
from pr_review.providers import Provider, get_provider
from pr_review.providers.base import Message, ModelInfo, TokenUsage, ToolCall
from pr_review.session.log import SessionLog, now_iso
from pr_review.session.models import ConversationTurn
from pr_review.tools import ToolAccess, ToolContext, ToolRegistry, create_tool_registry

if TYPE_CHECKING:
    from pr_review.core.settings import Settings

logger = logging.getLogger(__name__)

FragmentHandler = Callable[[str], None]


@dataclass
class ConversationConfig:
    """Everything needed to open a conversation.

    Attributes:
        working_directory: Directory tools are scoped to.
        model: Resolved model to invoke.
        system_prompt: System instructions for every turn.
        tool_access: Capability set exposed to the model.
        log: Backing log; None means a fresh ephemeral in-memory log.
        max_retries: Automatic retries on transient transport failures.
        max_tool_rounds: Model calls allowed per exchange.
        options: Provider options (max_tokens, temperature).
    """

    working_directory: Path
    model: ModelInfo
    system_prompt: str
    tool_access: ToolAccess = ToolAccess.NONE
    log: Optional[SessionLog] = None
    max_retries: int = 2
    max_tool_rounds: int = 25
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConversationDefaults:
    """Transport limits shared by every conversation of one invocation."""

    max_retries: int = 2
    max_tool_rounds: int = 25
    max_output_tokens: int = 8192

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ConversationDefaults":
        return cls(
            max_retries=settings.max_retries,
            max_tool_rounds=settings.max_tool_rounds,
            max_output_tokens=settings.max_output_tokens,
        )

    def config(
        self,
        working_directory: Path,
        model: ModelInfo,
        system_prompt: str,
        tool_access: ToolAccess,
        log: Optional[SessionLog] = None,
    ) -> ConversationConfig:
        return ConversationConfig(
            working_directory=working_directory,
            model=model,
            system_prompt=system_prompt,
            tool_access=tool_access,
            log=log,
            max_retries=self.max_retries,
            max_tool_rounds=self.max_tool_rounds,
            options={"max_tokens": self.max_output_tokens},
        )


@dataclass
class _RoundResult:
    text: str
    tool_calls: List[ToolCall]
    usage: TokenUsage


class Conversation:
    """Handle over one conversation.

    At most one ``prompt`` may be in flight per handle; callers sequence
    their prompts. After a failed prompt the handle is unusable and must be
    disposed.
    """

    def __init__(
        self,
        config: ConversationConfig,
        provider: Provider,
        log: SessionLog,
        tools: ToolRegistry,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.log = log
        self.tools = tools
        self._retry = retry or RetryExecutorImpl(max_retries=config.max_retries)
        self._handlers: List[FragmentHandler] = []
        self._disposed = False
        self._failed = False
        self._round_emitted = False

    @classmethod
    async def open(
        cls,
        config: ConversationConfig,
        provider: Optional[Provider] = None,
        retry: Optional[RetryExecutor] = None,
    ) -> "Conversation":
        """Open a conversation.

        Args:
            config: Conversation configuration
            provider: Transport to use; resolved from the model's provider
                and the configured API key when omitted
            retry: Retry executor; a bounded RetryExecutorImpl by default

        Returns:
            Ready-to-use Conversation
        """
        if provider is None:
            provider = _provider_for(config.model)

        log = config.log if config.log is not None else SessionLog.in_memory(config.working_directory)
        tools = create_tool_registry(config.tool_access)

        logger.debug(
            f"[{log.header.id}] Opened conversation "
            f"(model={config.model.qualified_id}, tools={config.tool_access.value}, "
            f"durable={log.durable}, turns={len(log)})"
        )
        return cls(config, provider, log, tools, retry)

    @property
    def session_id(self) -> str:
        return self.log.header.id

    @property
    def session_file(self) -> Optional[Path]:
        return self.log.path

    def subscribe(self, handler: FragmentHandler) -> Callable[[], None]:
        """Register a callback for every assistant text fragment.

        Returns:
            A function that unregisters the handler.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def prompt(self, text: str) -> str:
        """Run one exchange and append it to the log.

        Args:
            text: User message

        Returns:
            The assistant's final text for this exchange

        Raises:
            ModelInvocationFailed: On any transport or model error
            ReviewError: Raised by a fragment subscriber, passed through as is
        """
        if self._disposed:
            raise RuntimeError("Conversation has been disposed")
        if self._failed:
            raise RuntimeError("Conversation failed earlier and cannot be reused")

        logger.debug(f"[{self.session_id}] Prompt to LLM ({len(text)} chars)")

        pending: List[Message] = [{"role": "user", "content": text}]
        usage = TokenUsage()
        final_text = ""

        try:
            for round_index in range(self.config.max_tool_rounds):
                last_round = round_index == self.config.max_tool_rounds - 1
                result = await self._retry.execute(
                    lambda: self._stream_round(pending, final=last_round),
                    can_retry=lambda: not self._round_emitted,
                )
                usage = usage.add(result.usage)
                final_text = result.text
                if last_round and result.tool_calls:
                    logger.warning(
                        f"[{self.session_id}] Ignoring {len(result.tool_calls)} tool call(s) "
                        f"after {self.config.max_tool_rounds} rounds"
                    )
                    result.tool_calls = []

                assistant: Message = {"role": "assistant", "content": result.text}
                if result.tool_calls:
                    assistant["tool_calls"] = [
                        {"id": call.call_id, "name": call.tool, "input": call.input}
                        for call in result.tool_calls
                    ]
                pending.append(assistant)

                if not result.tool_calls:
                    break

                for call in result.tool_calls:
                    pending.append(await self._run_tool(call))
        except ReviewError:
            # raised by a subscriber, not by the model
            self._failed = True
            raise
        except Exception as e:
            self._failed = True
            raise ModelInvocationFailed(e, attempts=self._retry.get_attempt_count()) from e

        turn = ConversationTurn(
            id=uuid.uuid4().hex[:12],
            timestamp=now_iso(),
            model=self.config.model.qualified_id,
            messages=pending,
            usage={"input": usage.input, "output": usage.output},
        )
        await self.log.append(turn)

        logger.debug(
            f"[{self.session_id}] Response from LLM "
            f"({len(final_text)} chars, {usage.input}+{usage.output} tokens)"
        )
        return final_text

    def dispose(self) -> None:
        """Release the handle. Durable logs stay on disk."""
        if self._disposed:
            return
        self._disposed = True
        self._handlers.clear()
        logger.debug(f"[{self.session_id}] Disposed conversation")

    async def _stream_round(self, pending: List[Message], final: bool) -> _RoundResult:
        self._round_emitted = False
        chunks: List[str] = []
        tool_calls: List[ToolCall] = []
        usage = TokenUsage()

        options = dict(self.config.options)
        tools = self.tools.definitions()
        if final and tools:
            # history may hold tool calls, so the definitions must stay
            options["tool_choice"] = "none"
        messages = self.log.messages() + pending

        async for event in self.provider.stream(
            self.config.model, self.config.system_prompt, messages, tools, options
        ):
            if event.event_type == "text-delta":
                delta = event.data.get("delta", "")
                if delta:
                    chunks.append(delta)
                    self._emit(delta)
            elif event.event_type == "tool-call":
                tool_calls.append(
                    ToolCall(
                        call_id=event.data.get("call_id") or f"call_{uuid.uuid4().hex[:8]}",
                        tool=event.data.get("tool", ""),
                        input=event.data.get("input") or {},
                    )
                )
            elif event.event_type == "finish":
                usage = event.data.get("usage") or usage
                logger.debug(
                    f"[{self.session_id}] Stream finished: {event.data.get('finish_reason')}"
                )

        return _RoundResult(text="".join(chunks), tool_calls=tool_calls, usage=usage)

    def _emit(self, delta: str) -> None:
        self._round_emitted = True
        for handler in list(self._handlers):
            handler(delta)

    async def _run_tool(self, call: ToolCall) -> Message:
        tool = self.tools.get(call.tool)
        if tool is None:
            output = f"Unknown tool: {call.tool}"
            logger.warning(f"[{self.session_id}] Model requested unavailable tool {call.tool}")
        else:
            logger.debug(f"[{self.session_id}] Tool call {call.tool}({call.input})")
            ctx = ToolContext(
                working_directory=self.config.working_directory,
                session_id=self.session_id,
                call_id=call.call_id,
            )
            try:
                result = await tool.execute(call.input, ctx)
            except Exception as e:
                logger.error(f"[{self.session_id}] Tool {call.tool} failed: {e}", exc_info=True)
                output = f"Error: {call.tool} failed: {e}"
            else:
                output = result.output if not result.is_error else f"Error: {result.output}"

        return {
            "role": "tool",
            "tool_call_id": call.call_id,
            "name": call.tool,
            "content": output,
        }


def _provider_for(model: ModelInfo) -> Provider:
    from pr_review.core.settings import get_settings

    settings = get_settings()
    api_key = settings.get_api_key_for_provider(model.provider_id)
    provider = get_provider(
        model.provider_id,
        api_key.get_secret_value() if api_key else "",
        timeout=settings.request_timeout,
    )
    if provider is None:
        raise ValueError(f"No transport for provider {model.provider_id.value}")
    return provider


ConversationOpener = Callable[[ConversationConfig], Awaitable[Conversation]]
