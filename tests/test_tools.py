"""Tests for emissary.tool (BaseTool contract, FunctionTool, ToolRegistry)."""

from __future__ import annotations

from typing import ClassVar

import pytest
from pydantic import BaseModel, Field

from emissary.errors import InvalidEntityError
from emissary.tool import (
    BaseTool,
    FunctionTool,
    ToolError,
    ToolOk,
    ToolParams,
    ToolRegistry,
    ToolResult,
)


class _GreetParams(ToolParams):
    name: str = Field(description="Who to greet")
    excited: bool = False


class _GreetTool(BaseTool[_GreetParams]):
    name: ClassVar[str] = "greet"
    description: ClassVar[str] = "Greet someone"
    param_model: ClassVar[type[BaseModel]] = _GreetParams

    async def execute(self, params: _GreetParams) -> ToolResult:
        suffix = "!" if params.excited else "."
        return ToolOk(output=f"Hello, {params.name}{suffix}")


class _ExplodingTool(BaseTool[_GreetParams]):
    name: ClassVar[str] = "explode"
    description: ClassVar[str] = "Always raises"
    param_model: ClassVar[type[BaseModel]] = _GreetParams

    async def execute(self, params: _GreetParams) -> ToolResult:
        raise RuntimeError("kaboom")


# ---------------------------------------------------------------------------
# ToolResult
# ---------------------------------------------------------------------------


class TestToolResult:
    def test_ok_defaults(self) -> None:
        result = ToolOk(output=4)
        assert result.success is True
        assert result.error is None
        assert result.to_dict() == {"success": True, "output": 4}

    def test_error_defaults(self) -> None:
        result = ToolError(error="nope")
        assert result.success is False
        assert result.to_dict() == {"success": False, "error": "nope"}

    def test_observation_is_json_for_success(self) -> None:
        assert ToolOk(output={"a": 1}).observation() == '{"a": 1}'
        assert ToolOk(output="hi").observation() == '"hi"'
        assert ToolOk(output=None).observation() == "null"

    def test_observation_prefixes_errors(self) -> None:
        assert ToolError(error="bad").observation() == "Error: bad"


# ---------------------------------------------------------------------------
# BaseTool
# ---------------------------------------------------------------------------


class TestBaseTool:
    async def test_valid_call(self) -> None:
        result = await _GreetTool()({"name": "Ada", "excited": True})
        assert result.success
        assert result.output == "Hello, Ada!"

    async def test_missing_required_parameter(self) -> None:
        result = await _GreetTool()({})
        assert not result.success
        assert result.error == "Invalid parameters: Missing required parameter: name"

    async def test_unknown_parameter_rejected(self) -> None:
        result = await _GreetTool()({"name": "Ada", "volume": 11})
        assert not result.success
        assert result.error == "Invalid parameters: Unknown parameter: volume"

    async def test_multiple_errors_joined(self) -> None:
        result = await _GreetTool()({"volume": 11})
        assert result.error == (
            "Invalid parameters: Missing required parameter: name, Unknown parameter: volume"
        )

    async def test_wrong_type_reported(self) -> None:
        result = await _GreetTool()({"name": ["not", "a", "string"]})
        assert not result.success
        assert result.error.startswith("Invalid parameters: Invalid parameter name:")

    async def test_non_dict_arguments(self) -> None:
        result = await _GreetTool()(["Ada"])  # type: ignore[arg-type]
        assert not result.success
        assert "JSON object" in result.error

    async def test_executor_exception_becomes_error(self) -> None:
        result = await _ExplodingTool()({"name": "Ada"})
        assert result.success is False
        assert result.error == "kaboom"

    def test_parameters_schema(self) -> None:
        schema = _GreetTool().parameters
        assert "title" not in schema
        assert schema["type"] == "object"
        assert schema["required"] == ["name"]
        assert set(schema["properties"]) == {"name", "excited"}

    def test_definition(self) -> None:
        definition = _GreetTool().definition()
        assert definition.name == "greet"
        assert definition.description == "Greet someone"
        spec = definition.to_openai_spec()
        assert spec["type"] == "function"
        assert spec["function"]["name"] == "greet"


# ---------------------------------------------------------------------------
# FunctionTool
# ---------------------------------------------------------------------------


_ADD_SCHEMA = {
    "type": "object",
    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
    "required": ["a", "b"],
}


class TestFunctionTool:
    async def test_sync_function_wrapped_in_ok(self) -> None:
        tool = FunctionTool("add", "Add numbers", _ADD_SCHEMA, lambda p: p["a"] + p["b"])
        result = await tool({"a": 2, "b": 3})
        assert result.success
        assert result.output == 5

    async def test_async_function(self) -> None:
        async def add(params: dict) -> int:
            return params["a"] + params["b"]

        tool = FunctionTool("add", "Add numbers", _ADD_SCHEMA, add)
        assert (await tool({"a": 1, "b": 1})).output == 2

    async def test_tool_result_passed_through(self) -> None:
        tool = FunctionTool("fail", "Fails", {}, lambda p: ToolError(error="declined"))
        result = await tool({})
        assert result.success is False
        assert result.error == "declined"

    async def test_schema_validation(self) -> None:
        tool = FunctionTool("add", "Add numbers", _ADD_SCHEMA, lambda p: 0)
        result = await tool({"a": 1, "c": 2})
        assert result.error == (
            "Invalid parameters: Missing required parameter: b, Unknown parameter: c"
        )

    async def test_throwing_function_never_escapes(self) -> None:
        def boom(params: dict) -> None:
            raise ValueError("bad value")

        tool = FunctionTool("boom", "Raises", {}, boom)
        result = await tool({})
        assert result.success is False
        assert result.error == "bad value"

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(InvalidEntityError):
            FunctionTool("", "desc", {}, lambda p: None)

    def test_empty_description_rejected(self) -> None:
        with pytest.raises(InvalidEntityError):
            FunctionTool("name", "  ", {}, lambda p: None)

    def test_parameters_is_the_schema(self) -> None:
        tool = FunctionTool("add", "Add numbers", _ADD_SCHEMA, lambda p: 0)
        assert tool.parameters["required"] == ["a", "b"]


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class TestToolRegistry:
    def test_register_and_get(self) -> None:
        registry = ToolRegistry()
        tool = _GreetTool()
        registry.register(tool)
        assert registry.get("greet") is tool
        assert "greet" in registry
        assert len(registry) == 1
        assert registry.names() == ["greet"]

    def test_register_overwrites_same_name(self) -> None:
        registry = ToolRegistry()
        first, second = _GreetTool(), _GreetTool()
        registry.register(first)
        registry.register(second)
        assert len(registry) == 1
        assert registry.get("greet") is second

    def test_unregister(self) -> None:
        registry = ToolRegistry()
        registry.register(_GreetTool())
        assert registry.unregister("greet") is True
        assert registry.unregister("greet") is False
        assert registry.get("greet") is None

    def test_resolve_all_when_no_names(self) -> None:
        registry = ToolRegistry()
        registry.register_many([_GreetTool(), _ExplodingTool()])
        assert [t.name for t in registry.resolve()] == ["greet", "explode"]

    def test_resolve_skips_unknown_names(self) -> None:
        registry = ToolRegistry()
        registry.register_many([_GreetTool(), _ExplodingTool()])
        tools = registry.resolve(["explode", "missing", "greet"])
        assert [t.name for t in tools] == ["explode", "greet"]

    def test_resolve_empty_list_means_no_tools(self) -> None:
        registry = ToolRegistry()
        registry.register(_GreetTool())
        assert registry.resolve([]) == []

    def test_definitions(self) -> None:
        registry = ToolRegistry()
        registry.register(_GreetTool())
        assert [d.name for d in registry.definitions()] == ["greet"]

    async def test_execute(self) -> None:
        registry = ToolRegistry()
        registry.register(_GreetTool())
        result = await registry.execute("greet", {"name": "Bob"})
        assert result.output == "Hello, Bob."

    async def test_execute_unknown_tool(self) -> None:
        result = await ToolRegistry().execute("nope", {})
        assert result.success is False
        assert result.error == "Tool not found: nope"

    async def test_execute_never_raises(self) -> None:
        registry = ToolRegistry()
        registry.register(_ExplodingTool())
        result = await registry.execute("explode", {"name": "x"})
        assert result.success is False
        assert result.error == "kaboom"
