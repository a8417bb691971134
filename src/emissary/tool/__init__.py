"""Tool system — base classes, registry, and built-in tools."""

from emissary.tool.base import (
    BaseTool,
    FunctionTool,
    ToolError,
    ToolOk,
    ToolParams,
    ToolResult,
)
from emissary.tool.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolError",
    "ToolOk",
    "ToolParams",
    "ToolResult",
    "ToolRegistry",
]
