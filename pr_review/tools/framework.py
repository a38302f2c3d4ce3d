"""Tool framework: base class, execution context and registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel


class ToolAccess(str, Enum):
    """Capability set a conversation is allowed to use."""

    FULL = "full"
    READ_ONLY = "read_only"
    NONE = "none"


@dataclass
class ToolContext:
    """Per-call execution context handed to every tool."""

    working_directory: Path
    session_id: str = ""
    call_id: str = ""


@dataclass
class ToolResult:
    title: str
    output: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return "error" in self.metadata


class Tool(ABC):
    """Base class for tools exposed to the model."""

    id: str = ""
    description: str = ""
    args_model: Optional[Type[BaseModel]] = None
    read_only: bool = True

    def parameters(self) -> Dict[str, Any]:
        """Get JSON schema for tool parameters"""
        if self.args_model is None:
            return {"type": "object", "properties": {}}
        return self.args_model.model_json_schema()

    def definition(self) -> Dict[str, Any]:
        return {"name": self.id, "description": self.description, "parameters": self.parameters()}

    @abstractmethod
    async def execute(self, args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
        ...


class ToolRegistry:
    """Tools available to one conversation, keyed by tool id."""

    def __init__(self, tools: Optional[List[Tool]] = None) -> None:
        self.tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.id in self.tools:
            raise ValueError(f"Tool '{tool.id}' already registered")
        self.tools[tool.id] = tool

    def get(self, tool_id: str) -> Optional[Tool]:
        return self.tools.get(tool_id)

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.definition() for tool in self.tools.values()]

    def __len__(self) -> int:
        return len(self.tools)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self.tools
