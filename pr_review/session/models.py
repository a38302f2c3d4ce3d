"""Record types of the line-oriented conversation log."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

LOG_FORMAT_VERSION = 1


class SessionHeader(BaseModel):
    """First record of every log file."""

    type: Literal["session"] = "session"
    version: int = LOG_FORMAT_VERSION
    id: str
    timestamp: str
    cwd: str


class ConversationTurn(BaseModel):
    """One complete exchange: the user prompt, any tool round trips and the
    assistant's final answer, in provider-neutral message form."""

    type: Literal["turn"] = "turn"
    id: str
    timestamp: str
    model: str = ""
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    usage: Dict[str, int] = Field(default_factory=dict)

    @property
    def prompt(self) -> Optional[str]:
        for message in self.messages:
            if message.get("role") == "user":
                return message.get("content")
        return None

    @property
    def response(self) -> str:
        for message in reversed(self.messages):
            if message.get("role") == "assistant":
                return message.get("content") or ""
        return ""
