"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from emissary.errors import InvalidEntityError
from emissary.llm.message import ToolDefinition

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class ToolResult:
    """Outcome of a tool execution: ``ToolOk`` or ``ToolError``."""

    success: bool
    output: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "output": self.output}
        return {"success": False, "error": self.error}

    def observation(self) -> str:
        """Render the result as the text the model sees next turn."""
        if self.success:
            return json.dumps(self.output, ensure_ascii=False, default=str)
        return f"Error: {self.error}"


@dataclass
class ToolOk(ToolResult):
    """Successful tool result."""

    success: bool = True


@dataclass
class ToolError(ToolResult):
    """Failed tool result."""

    success: bool = False


class ToolParams(BaseModel):
    """Base for tool parameter models; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class BaseTool(ABC, Generic[T]):
    """Base class for all tools.

    Each tool declares its parameters as a Pydantic model (the type parameter T).
    Calling a tool never raises: bad parameters and executor exceptions both
    come back as ``ToolError``.

    Usage:
        class MyParams(ToolParams):
            text: str

        class MyTool(BaseTool[MyParams]):
            name = "my_tool"
            description = "Does something useful"
            param_model = MyParams

            async def execute(self, params: MyParams) -> ToolResult:
                return ToolOk(output=params.text)
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]

    async def __call__(self, arguments: dict[str, Any]) -> ToolResult:
        """Validate arguments, then execute."""
        errors = self.validate(arguments)
        if errors:
            return ToolError(error=f"Invalid parameters: {', '.join(errors)}")

        try:
            result = await self.execute(self.parse(arguments))
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return ToolError(error=str(e) or type(e).__name__)

        return result

    @abstractmethod
    async def execute(self, params: T) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON schema of the parameters."""
        schema = self.param_model.model_json_schema()
        # LLMs don't need the title and $defs Pydantic adds
        schema.pop("title", None)
        schema.pop("$defs", None)
        return schema

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name, description=self.description, parameters=self.parameters
        )

    def validate(self, arguments: Any) -> list[str]:
        """Check arguments against the parameter model.

        Returns human-readable messages; empty when the arguments are valid.
        """
        if not isinstance(arguments, dict):
            return ["arguments must be a JSON object"]

        errors: list[str] = []
        try:
            self.param_model.model_validate(arguments)
        except PydanticValidationError as e:
            for err in e.errors():
                field = ".".join(str(p) for p in err["loc"])
                if err["type"] == "missing":
                    errors.append(f"Missing required parameter: {field}")
                elif err["type"] != "extra_forbidden":
                    errors.append(f"Invalid parameter {field}: {err['msg']}")

        known = set(self.param_model.model_fields)
        errors.extend(f"Unknown parameter: {key}" for key in arguments if key not in known)
        return errors

    def parse(self, arguments: dict[str, Any]) -> Any:
        return self.param_model.model_validate(arguments)


ToolFunction = Callable[[dict[str, Any]], "Awaitable[Any] | Any"]


class FunctionTool(BaseTool[BaseModel]):
    """A tool described by a raw JSON schema and a plain callable.

    This is how tools supplied from outside the package (plugins, tests)
    are registered. ``fn`` receives the argument dict and may be sync or
    async; a returned ``ToolResult`` is passed through, anything else is
    wrapped in ``ToolOk``.
    """

    def __init__(
        self,
        name: str,
        description: str,
        schema: dict[str, Any],
        fn: ToolFunction,
    ) -> None:
        if not name or not name.strip():
            raise InvalidEntityError("Tool name cannot be empty")
        if not description or not description.strip():
            raise InvalidEntityError("Tool description cannot be empty")

        self.name = name  # type: ignore[misc]
        self.description = description  # type: ignore[misc]
        self.schema = {"type": "object", "properties": {}, **schema}
        self._fn = fn

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self.schema)

    def validate(self, arguments: Any) -> list[str]:
        if not isinstance(arguments, dict):
            return ["arguments must be a JSON object"]

        errors = [
            f"Missing required parameter: {field}"
            for field in self.schema.get("required", [])
            if field not in arguments
        ]
        properties = self.schema.get("properties", {})
        errors.extend(f"Unknown parameter: {key}" for key in arguments if key not in properties)
        return errors

    def parse(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return arguments

    async def execute(self, params: Any) -> ToolResult:
        value = self._fn(params)
        if inspect.isawaitable(value):
            value = await value
        if isinstance(value, ToolResult):
            return value
        return ToolOk(output=value)
