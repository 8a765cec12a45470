from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolExecution


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def subset(self, names: Iterable[str], exclude: Iterable[str] = ()) -> "ToolRegistry":
        """A registry holding only the named tools that exist here."""
        skip = set(exclude)
        registry = ToolRegistry()
        for name in names:
            if name in skip:
                continue
            if tool := self._tools.get(name):
                registry.register(tool)
        return registry

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    async def execute(self, name: str, execution: ToolExecution, arguments: dict[str, Any]) -> ToolResult:
        tool = self._tools[name]

        if tool.input_model is not None:
            try:
                validated = tool.input_model(**arguments)
                arguments = validated.model_dump()
            except ValidationError as e:
                errors = "; ".join(
                    f"{'.'.join(str(l) for l in err['loc'])}: {err['msg']}" for err in e.errors() if err.get("loc")
                )
                return ToolResult(
                    content=f"Invalid arguments: {errors}",
                    preview="Validation error",
                    is_error=True,
                )

        return await tool.execute(execution, **arguments)

    def get_schemas(self, *, names: set[str] | None = None) -> list[dict]:
        return [tool.to_dict() for name, tool in self._tools.items() if names is None or name in names]

    @property
    def tools(self) -> dict[str, Tool]:
        return self._tools

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
