"""Built-in general-purpose tools."""

from emissary.tool.base import BaseTool
from emissary.tool.builtin.calculator import CalculatorTool
from emissary.tool.builtin.current_time import CurrentTimeTool
from emissary.tool.builtin.echo import EchoTool
from emissary.tool.builtin.parse_json import ParseJsonTool
from emissary.tool.builtin.string_manipulation import StringManipulationTool


def builtin_tools() -> list[BaseTool]:
    """Fresh instances of every built-in tool."""
    return [
        CalculatorTool(),
        EchoTool(),
        CurrentTimeTool(),
        ParseJsonTool(),
        StringManipulationTool(),
    ]


__all__ = [
    "CalculatorTool",
    "CurrentTimeTool",
    "EchoTool",
    "ParseJsonTool",
    "StringManipulationTool",
    "builtin_tools",
]
