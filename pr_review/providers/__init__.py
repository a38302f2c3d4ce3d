"""Model-invocation transports.

Each provider turns a system prompt, a provider-neutral message list and a
set of tool definitions into a stream of StreamEvent objects over HTTP.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

import httpx

from .base import (
    Message,
    ModelInfo,
    ModelLimits,
    ProviderError,
    ProviderID,
    StreamEvent,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from ..core.exceptions import NoModelAvailable

if TYPE_CHECKING:
    from ..core.settings import Settings


logger = logging.getLogger(__name__)


__all__ = [
    # Base types
    "ModelInfo",
    "ModelLimits",
    "ProviderError",
    "ProviderID",
    "StreamEvent",
    "TokenUsage",
    "ToolCall",
    # Provider classes
    "Provider",
    "AnthropicProvider",
    "OpenAIProvider",
    # Provider functions
    "get_provider",
    "get_available_models",
    "resolve_model",
]

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})


@runtime_checkable
class Provider(Protocol):
    """Protocol every transport implements."""

    async def get_models(self) -> List[ModelInfo]:
        ...

    def model_info(self, model_id: str) -> ModelInfo:
        ...

    def stream(
        self,
        model: ModelInfo,
        system: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[StreamEvent]:
        ...


class _HTTPProvider:
    """Shared HTTP plumbing for the streaming providers."""

    provider_id: ProviderID
    default_base_url: str
    catalog: Dict[str, Dict[str, Any]] = {}

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 600.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def get_models(self) -> List[ModelInfo]:
        if not self.api_key:
            return []
        return [self.model_info(model_id) for model_id in self.catalog]

    def model_info(self, model_id: str) -> ModelInfo:
        entry = self.catalog.get(model_id, {})
        return ModelInfo(
            id=model_id,
            provider_id=self.provider_id,
            api_id=model_id,
            api_url=self.base_url,
            name=entry.get("name", model_id),
            family=entry.get("family", ""),
            limit=ModelLimits(
                context=entry.get("context", 128000),
                output=entry.get("output", 8192),
            ),
        )

    @staticmethod
    async def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")
        raise ProviderError(
            f"HTTP {response.status_code} from {response.request.url}: {body[:500]}",
            status_code=response.status_code,
            retryable=response.status_code in RETRYABLE_STATUS_CODES,
        )

    @staticmethod
    async def _iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
        async for line in response.aiter_lines():
            if not line.strip() or not line.startswith("data:"):
                continue
            yield line[5:].strip()


class AnthropicProvider(_HTTPProvider):
    provider_id = ProviderID.ANTHROPIC
    default_base_url = "https://api.anthropic.com/v1"
    catalog = {
        "claude-sonnet-4-20250514": {
            "name": "Claude Sonnet 4",
            "family": "sonnet",
            "context": 200000,
            "output": 64000,
        },
        "claude-opus-4-20250514": {
            "name": "Claude Opus 4",
            "family": "opus",
            "context": 200000,
            "output": 32000,
        },
        "claude-3-5-haiku-20241022": {
            "name": "Claude Haiku 3.5",
            "family": "haiku",
            "context": 200000,
            "output": 8192,
        },
    }

    async def stream(
        self,
        model: ModelInfo,
        system: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[StreamEvent]:
        options = options or {}
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
            **model.headers,
        }

        payload: Dict[str, Any] = {
            "model": model.api_id,
            "max_tokens": options.get("max_tokens", 8192),
            "messages": to_anthropic_messages(messages),
            "stream": True,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "input_schema": tool["parameters"],
                }
                for tool in tools
            ]
            if "tool_choice" in options:
                payload["tool_choice"] = {"type": options["tool_choice"]}
        if "temperature" in options:
            payload["temperature"] = options["temperature"]

        usage = TokenUsage()
        stop_reason = "end_turn"
        # content block index -> {"id", "name", "json"}
        tool_blocks: Dict[int, Dict[str, str]] = {}

        async with self._client() as client:
            async with client.stream(
                "POST", f"{self.base_url}/messages", json=payload, headers=headers
            ) as response:
                await self._raise_for_status(response)
                yield StreamEvent(event_type="start", data={"model": model.id})

                async for data_str in self._iter_sse_data(response):
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError as e:
                        logger.error(f"Failed to parse Anthropic chunk: {e}")
                        continue

                    event_type = chunk.get("type")

                    if event_type == "message_start":
                        message_usage = chunk.get("message", {}).get("usage", {})
                        usage.input = message_usage.get("input_tokens", 0)
                        usage.cache_read = message_usage.get("cache_read_input_tokens", 0)
                        usage.cache_write = message_usage.get("cache_creation_input_tokens", 0)

                    elif event_type == "content_block_start":
                        block = chunk.get("content_block", {})
                        if block.get("type") == "tool_use":
                            tool_blocks[chunk.get("index", 0)] = {
                                "id": block.get("id", ""),
                                "name": block.get("name", ""),
                                "json": "",
                            }

                    elif event_type == "content_block_delta":
                        delta = chunk.get("delta", {})
                        if delta.get("type") == "text_delta":
                            text = delta.get("text", "")
                            if text:
                                yield StreamEvent(event_type="text-delta", data={"delta": text})
                        elif delta.get("type") == "input_json_delta":
                            block_state = tool_blocks.get(chunk.get("index", 0))
                            if block_state is not None:
                                block_state["json"] += delta.get("partial_json", "")

                    elif event_type == "content_block_stop":
                        block_state = tool_blocks.pop(chunk.get("index", 0), None)
                        if block_state is not None:
                            yield StreamEvent(
                                event_type="tool-call",
                                data={
                                    "call_id": block_state["id"],
                                    "tool": block_state["name"],
                                    "input": _parse_tool_input(block_state["json"]),
                                },
                            )

                    elif event_type == "message_delta":
                        stop_reason = chunk.get("delta", {}).get("stop_reason") or stop_reason
                        usage.output = chunk.get("usage", {}).get("output_tokens", usage.output)

                    elif event_type == "message_stop":
                        break

                    elif event_type == "error":
                        error = chunk.get("error", {})
                        error_type = error.get("type", "")
                        raise ProviderError(
                            f"Anthropic stream error ({error_type}): {error.get('message', '')}",
                            retryable=error_type
                            in ("overloaded_error", "api_error", "rate_limit_error"),
                        )

        yield StreamEvent(
            event_type="finish", data={"finish_reason": stop_reason, "usage": usage}
        )


class OpenAIProvider(_HTTPProvider):
    provider_id = ProviderID.OPENAI
    default_base_url = "https://api.openai.com/v1"
    catalog = {
        "gpt-4.1": {"name": "GPT-4.1", "family": "gpt", "context": 1047576, "output": 32768},
        "gpt-4o": {"name": "GPT-4o", "family": "gpt", "context": 128000, "output": 16384},
    }

    async def stream(
        self,
        model: ModelInfo,
        system: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[StreamEvent]:
        options = options or {}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **model.headers,
        }

        wire_messages = to_openai_messages(messages)
        if system:
            wire_messages.insert(0, {"role": "system", "content": system})

        payload: Dict[str, Any] = {
            "model": model.api_id,
            "messages": wire_messages,
            "max_completion_tokens": options.get("max_tokens", 8192),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool["description"],
                        "parameters": tool["parameters"],
                    },
                }
                for tool in tools
            ]
            if "tool_choice" in options:
                payload["tool_choice"] = options["tool_choice"]
        if "temperature" in options:
            payload["temperature"] = options["temperature"]

        usage = TokenUsage()
        finish_reason = "stop"
        # tool call index -> {"id", "name", "arguments"}
        pending_calls: Dict[int, Dict[str, str]] = {}

        async with self._client() as client:
            async with client.stream(
                "POST", f"{self.base_url}/chat/completions", json=payload, headers=headers
            ) as response:
                await self._raise_for_status(response)
                yield StreamEvent(event_type="start", data={"model": model.id})

                async for data_str in self._iter_sse_data(response):
                    if data_str == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError as e:
                        logger.error(f"Failed to parse OpenAI chunk: {e}")
                        continue

                    if "error" in chunk:
                        raise ProviderError(
                            f"OpenAI stream error: {chunk['error'].get('message', '')}",
                            retryable=True,
                        )

                    chunk_usage = chunk.get("usage")
                    if chunk_usage:
                        usage = TokenUsage(
                            input=chunk_usage.get("prompt_tokens", 0),
                            output=chunk_usage.get("completion_tokens", 0),
                            cache_read=chunk_usage.get("prompt_tokens_details", {}).get(
                                "cached_tokens", 0
                            ),
                        )

                    for choice in chunk.get("choices", []):
                        delta = choice.get("delta", {})
                        text = delta.get("content")
                        if text:
                            yield StreamEvent(event_type="text-delta", data={"delta": text})
                        for call_delta in delta.get("tool_calls", []) or []:
                            state = pending_calls.setdefault(
                                call_delta.get("index", 0), {"id": "", "name": "", "arguments": ""}
                            )
                            if call_delta.get("id"):
                                state["id"] = call_delta["id"]
                            function = call_delta.get("function", {})
                            if function.get("name"):
                                state["name"] = function["name"]
                            state["arguments"] += function.get("arguments", "") or ""
                        if choice.get("finish_reason"):
                            finish_reason = choice["finish_reason"]

        for index in sorted(pending_calls):
            state = pending_calls[index]
            yield StreamEvent(
                event_type="tool-call",
                data={
                    "call_id": state["id"],
                    "tool": state["name"],
                    "input": _parse_tool_input(state["arguments"]),
                },
            )

        yield StreamEvent(
            event_type="finish", data={"finish_reason": finish_reason, "usage": usage}
        )


def _parse_tool_input(raw: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding malformed tool input: {raw[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_anthropic_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert provider-neutral messages to the Anthropic Messages API shape."""
    wire: List[Dict[str, Any]] = []

    for msg in messages:
        role = msg["role"]
        if role == "user":
            wire.append({"role": "user", "content": msg["content"]})
        elif role == "assistant":
            blocks: List[Dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for call in msg.get("tool_calls") or []:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["name"],
                        "input": call["input"],
                    }
                )
            if blocks:
                wire.append({"role": "assistant", "content": blocks})
        elif role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg["tool_call_id"],
                "content": msg["content"],
            }
            previous = wire[-1] if wire else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and previous["content"][-1].get("type") == "tool_result"
            ):
                previous["content"].append(block)
            else:
                wire.append({"role": "user", "content": [block]})

    return wire


def to_openai_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert provider-neutral messages to the Chat Completions shape."""
    wire: List[Dict[str, Any]] = []

    for msg in messages:
        role = msg["role"]
        if role == "user":
            wire.append({"role": "user", "content": msg["content"]})
        elif role == "assistant":
            entry: Dict[str, Any] = {"role": "assistant", "content": msg.get("content") or None}
            calls = msg.get("tool_calls") or []
            if calls:
                entry["tool_calls"] = [
                    {
                        "id": call["id"],
                        "type": "function",
                        "function": {"name": call["name"], "arguments": json.dumps(call["input"])},
                    }
                    for call in calls
                ]
            wire.append(entry)
        elif role == "tool":
            wire.append(
                {"role": "tool", "tool_call_id": msg["tool_call_id"], "content": msg["content"]}
            )

    return wire


ProviderClass = Union[type[AnthropicProvider], type[OpenAIProvider]]

_PROVIDER_CLASSES: Dict[ProviderID, ProviderClass] = {
    ProviderID.ANTHROPIC: AnthropicProvider,
    ProviderID.OPENAI: OpenAIProvider,
}


def get_provider(
    provider_id: ProviderID,
    api_key: str,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = 600.0,
) -> Union[AnthropicProvider, OpenAIProvider, None]:
    """Get a provider instance by ID.

    Args:
        provider_id: ProviderID enum value
        api_key: API key for the provider
        http_client: Optional shared client (tests pass one with a mock transport)
        timeout: Request timeout in seconds when no client is supplied

    Returns:
        Provider instance or None if not found
    """
    provider_class = _PROVIDER_CLASSES.get(provider_id)
    if provider_class is None:
        return None
    return provider_class(api_key, http_client=http_client, timeout=timeout)


async def get_available_models(settings: "Settings") -> List[ModelInfo]:
    """All catalog models whose provider has an API key configured.

    The configured default provider is listed first.
    """
    default_provider = settings.get_default_provider()
    provider_ids = sorted(ProviderID, key=lambda p: p != default_provider)

    models: List[ModelInfo] = []
    for provider_id in provider_ids:
        api_key = settings.get_api_key_for_provider(provider_id)
        if api_key is None:
            continue
        provider = get_provider(provider_id, api_key.get_secret_value())
        if provider:
            models.extend(await provider.get_models())
    return models


async def resolve_model(settings: "Settings", model_id: Optional[str] = None) -> ModelInfo:
    """Pick the model a review or continuation runs against.

    An explicit model_id matches either a bare id or ``provider/id``; a
    ``provider/id`` outside the built-in catalog is accepted when that
    provider has a key. Without model_id, the configured default model is
    used when its provider has a key, otherwise the first available model.

    Raises:
        NoModelAvailable: If no configured provider can serve the request.
    """
    available = await get_available_models(settings)

    if model_id:
        for model in available:
            if model.id == model_id or model.qualified_id == model_id:
                return model

        provider_name, _, bare_id = model_id.partition("/")
        if bare_id:
            try:
                provider_id = ProviderID(provider_name)
            except ValueError:
                provider_id = None
            if provider_id is not None and settings.get_api_key_for_provider(provider_id):
                provider = get_provider(provider_id, "")
                if provider:
                    return provider.model_info(bare_id)

        raise NoModelAvailable(f'Model "{model_id}" not found or no API key available')

    default_provider = settings.get_default_provider()
    for model in available:
        if model.provider_id == default_provider and model.id == settings.model_default:
            return model

    if not available:
        raise NoModelAvailable(
            "No API key configured. Either:\n"
            "  • Set ANTHROPIC_API_KEY (or OPENAI_API_KEY) environment variable\n"
            "  • Or set PR_REVIEW_ANTHROPIC_API_KEY / PR_REVIEW_OPENAI_API_KEY"
        )

    logger.info(f"Default model {settings.model_default} unavailable, using {available[0].qualified_id}")
    return available[0]
