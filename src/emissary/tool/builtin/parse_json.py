"""JSON parser tool."""

from __future__ import annotations

import json
from typing import ClassVar

from pydantic import BaseModel, Field

from emissary.tool.base import BaseTool, ToolError, ToolOk, ToolParams, ToolResult


class ParseJsonParams(ToolParams):
    json_string: str = Field(description="The JSON string to parse")


class ParseJsonTool(BaseTool[ParseJsonParams]):
    name: ClassVar[str] = "parse_json"
    description: ClassVar[str] = "Parse a JSON string into an object."
    param_model: ClassVar[type[BaseModel]] = ParseJsonParams

    async def execute(self, params: ParseJsonParams) -> ToolResult:
        try:
            return ToolOk(output=json.loads(params.json_string))
        except json.JSONDecodeError as e:
            return ToolError(error=str(e))
