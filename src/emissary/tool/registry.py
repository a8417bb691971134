"""Tool registry — register, look up, and execute tools by name."""

from __future__ import annotations

import logging
from typing import Any

from emissary.llm.message import ToolDefinition
from emissary.tool.base import BaseTool, ToolError, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available tools.

    Instances are constructed and passed explicitly; there is no global
    registry. Tools are keyed by name.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        else:
            logger.info("Registering tool: %s", tool.name)
        self._tools[tool.name] = tool

    def register_many(self, tools: list[BaseTool]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def list(self) -> list[BaseTool]:
        return list(self._tools.values())

    def resolve(self, names: list[str] | None = None) -> list[BaseTool]:
        """Tools in scope for one execution.

        With ``names=None`` every registered tool is returned. Names that
        are not registered are skipped without error.
        """
        if names is None:
            return self.list()

        tools = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                logger.debug("Requested tool %s is not registered, skipping", name)
                continue
            tools.append(tool)
        return tools

    def definitions(self, names: list[str] | None = None) -> list[ToolDefinition]:
        return [t.definition() for t in self.resolve(names)]

    async def execute(self, name: str, params: dict[str, Any]) -> ToolResult:
        """Execute a tool by name. Never raises."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolError(error=f"Tool not found: {name}")

        logger.debug("Executing tool: %s", name)
        try:
            return await tool(params)
        except Exception as e:
            # BaseTool.__call__ already guards execute(); this covers
            # subclasses that override __call__ or validate().
            logger.error("Tool execution failed: %s", name, exc_info=True)
            return ToolError(error=str(e) or type(e).__name__)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
