from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ProviderID(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class ModelLimits:
    context: int
    output: Optional[int] = None


@dataclass
class ModelInfo:
    id: str
    provider_id: ProviderID
    api_id: str
    api_url: str
    name: str
    family: str
    limit: ModelLimits
    options: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def qualified_id(self) -> str:
        return f"{self.provider_id.value}/{self.id}"


@dataclass
class TokenUsage:
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

    def add(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input=self.input + other.input,
            output=self.output + other.output,
            cache_read=self.cache_read + other.cache_read,
            cache_write=self.cache_write + other.cache_write,
        )


@dataclass
class StreamEvent:
    """One event of a streamed assistant response.

    event_type is one of ``start``, ``text-delta`` (data: delta),
    ``tool-call`` (data: call_id, tool, input) or ``finish``
    (data: finish_reason, usage).
    """

    event_type: str
    data: Dict[str, Any]
    timestamp: Optional[float] = None


@dataclass
class ToolCall:
    call_id: str
    tool: str
    input: Dict[str, Any]


class ProviderError(Exception):
    """Error reported by a provider in-band (e.g. an SSE ``error`` event)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


# Messages exchanged with providers use a provider-neutral shape:
#   {"role": "user", "content": str}
#   {"role": "assistant", "content": str, "tool_calls": [{"id", "name", "input"}]}
#   {"role": "tool", "tool_call_id": str, "name": str, "content": str}
# Tool definitions are {"name", "description", "parameters" (JSON schema)}.
Message = Dict[str, Any]
ToolDefinition = Dict[str, Any]
MessageList = List[Message]
