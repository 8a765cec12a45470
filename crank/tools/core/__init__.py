"""Core tool infrastructure - base classes, registry, context."""

from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolContext, ToolExecution
from crank.tools.core.formatting import format_lines_with_pagination
from crank.tools.core.registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolExecution",
    "ToolRegistry",
    "ToolResult",
    "format_lines_with_pagination",
]
