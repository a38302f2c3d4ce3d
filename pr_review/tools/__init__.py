"""Tool registry construction per capability set."""

from __future__ import annotations

from typing import Dict, List, Type

from .builtin import GlobTool, GrepTool, ListTool, ReadTool, WriteTool
from .framework import Tool, ToolAccess, ToolContext, ToolRegistry, ToolResult

__all__ = [
    "Tool",
    "ToolAccess",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    "create_tool_registry",
]

READ_ONLY_TOOLS: List[Type[Tool]] = [ReadTool, GrepTool, GlobTool, ListTool]

_ACCESS_TOOLS: Dict[ToolAccess, List[Type[Tool]]] = {
    ToolAccess.NONE: [],
    ToolAccess.READ_ONLY: READ_ONLY_TOOLS,
    ToolAccess.FULL: READ_ONLY_TOOLS + [WriteTool],
}


def create_tool_registry(access: ToolAccess) -> ToolRegistry:
    """Build a fresh registry holding the tools of one capability set."""
    return ToolRegistry([tool_class() for tool_class in _ACCESS_TOOLS[access]])
