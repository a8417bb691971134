"""Echo tool — returns its input unchanged."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, Field

from emissary.tool.base import BaseTool, ToolOk, ToolParams, ToolResult


class EchoParams(ToolParams):
    message: str = Field(description="The message to echo back")


class EchoTool(BaseTool[EchoParams]):
    name: ClassVar[str] = "echo"
    description: ClassVar[str] = "Echo back the input message. Useful for testing."
    param_model: ClassVar[type[BaseModel]] = EchoParams

    async def execute(self, params: EchoParams) -> ToolResult:
        return ToolOk(output=params.message)
