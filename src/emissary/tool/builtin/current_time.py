"""Current time tool."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import ClassVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from emissary.tool.base import BaseTool, ToolError, ToolOk, ToolParams, ToolResult


class CurrentTimeParams(ToolParams):
    timezone: str | None = Field(
        default=None, description="Optional IANA timezone name (defaults to UTC)"
    )


class CurrentTimeTool(BaseTool[CurrentTimeParams]):
    """Report the current time as ISO 8601, epoch milliseconds, and readable text."""

    name: ClassVar[str] = "current_time"
    description: ClassVar[str] = "Get the current date and time in ISO 8601 format."
    param_model: ClassVar[type[BaseModel]] = CurrentTimeParams

    async def execute(self, params: CurrentTimeParams) -> ToolResult:
        now = datetime.now(timezone.utc)

        local = now
        if params.timezone:
            try:
                local = now.astimezone(ZoneInfo(params.timezone))
            except (ZoneInfoNotFoundError, ValueError):
                return ToolError(error=f"Unknown timezone: {params.timezone}")

        return ToolOk(
            output={
                "iso": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                "timestamp": time.time_ns() // 1_000_000,
                "readable": local.strftime("%c"),
            }
        )
