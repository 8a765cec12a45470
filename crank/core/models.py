from dataclasses import dataclass


@dataclass(frozen=True)
class PendingToolCall:
    id: str
    name: str
    args: dict

    def to_block(self) -> dict:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.args}


@dataclass(frozen=True)
class ToolCallOutcome:
    call: PendingToolCall
    content: str
    is_error: bool = False
    duration_ms: int = 0

    def to_block(self) -> dict:
        block = {"type": "tool_result", "tool_use_id": self.call.id, "content": self.content}
        if self.is_error:
            block["is_error"] = True
        return block
