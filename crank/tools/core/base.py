from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel

from crank.tools.core.context import ToolExecution


def _inline_refs(schema: dict) -> dict:
    """Resolve $ref pointers by inlining definitions from $defs."""
    defs = schema.get("$defs", {})
    if not defs:
        return schema

    def _resolve(node: Any) -> Any:
        if isinstance(node, dict):
            if "$ref" in node:
                # "#/$defs/ModelName" -> "ModelName"
                ref_name = node["$ref"].rsplit("/", 1)[-1]
                if ref_name in defs:
                    return _resolve(defs[ref_name])
                return node
            return {k: _resolve(v) for k, v in node.items() if k != "$defs"}
        if isinstance(node, list):
            return [_resolve(item) for item in node]
        return node

    return _resolve(schema)


@dataclass(frozen=True)
class ToolResult:
    content: str
    preview: str = ""
    is_error: bool = False

    @classmethod
    def error(cls, message: str, preview: str = "Failed") -> "ToolResult":
        return cls(content=message, preview=preview, is_error=True)


class Tool(ABC):
    name: str
    description: str
    mutates: bool = False
    input_model: ClassVar[type[BaseModel] | None] = None

    @abstractmethod
    async def execute(self, execution: ToolExecution, **kwargs: Any) -> ToolResult: ...

    def to_dict(self) -> dict:
        schema: dict = {"name": self.name, "description": self.description}
        if self.input_model is not None:
            json_schema = _inline_refs(self.input_model.model_json_schema())
            schema["parameters"] = {
                "type": "object",
                "properties": json_schema.get("properties", {}),
                "required": json_schema.get("required", []),
            }
        return {
            "type": "function",
            "function": schema,
        }

    def get_metadata(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "mutates": self.mutates,
        }
