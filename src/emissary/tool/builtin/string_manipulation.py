"""String manipulation tool."""

from __future__ import annotations

from typing import Callable, ClassVar

from pydantic import BaseModel, Field

from emissary.tool.base import BaseTool, ToolError, ToolOk, ToolParams, ToolResult

OPERATIONS: dict[str, Callable[[str], str | int]] = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "reverse": lambda text: text[::-1],
    "length": len,
    "trim": str.strip,
}


class StringManipulationParams(ToolParams):
    text: str = Field(description="The text to manipulate")
    operation: str = Field(
        description=f"The operation to perform: one of {', '.join(OPERATIONS)}",
        json_schema_extra={"enum": list(OPERATIONS)},
    )


class StringManipulationTool(BaseTool[StringManipulationParams]):
    name: ClassVar[str] = "string_manipulation"
    description: ClassVar[str] = (
        "Perform various string manipulations (uppercase, lowercase, reverse, length, trim)."
    )
    param_model: ClassVar[type[BaseModel]] = StringManipulationParams

    async def execute(self, params: StringManipulationParams) -> ToolResult:
        fn = OPERATIONS.get(params.operation)
        if fn is None:
            return ToolError(error=f"Unknown operation: {params.operation}")
        return ToolOk(output=fn(params.text))
