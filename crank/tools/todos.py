import json
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from crank.context.models import Todo, TodoStatus
from crank.events.sse import TodoUpdateEvent
from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolExecution


class TodoItem(BaseModel):
    id: str | None = Field(default=None, description="Stable id; omit for new items")
    content: str = Field(description="What needs to be done")
    status: TodoStatus = Field(default=TodoStatus.PENDING, description="pending, in_progress or completed")


class WriteTodosInput(BaseModel):
    todos: list[TodoItem] = Field(description="The complete todo list; replaces the current one")


class WriteTodosTool(Tool):
    name = "write_todos"
    description = "Replace the todo list. Send every item, including unchanged ones."
    input_model = WriteTodosInput

    async def execute(self, execution: ToolExecution, todos: list[dict], **kwargs: Any) -> ToolResult:
        items = [
            Todo(id=t.get("id") or str(uuid4()), content=t["content"], status=TodoStatus(t["status"])) for t in todos
        ]
        state = execution.ctx.session_state
        state.todos = items

        payload = [t.to_dict() for t in items]
        await execution.ctx.emit_event(TodoUpdateEvent(todos=payload))

        done = sum(1 for t in items if t.status == TodoStatus.COMPLETED)
        return ToolResult(content=f"Updated todo list with {len(items)} items", preview=f"{done}/{len(items)} done")


class ReadTodosTool(Tool):
    name = "read_todos"
    description = "Read the current todo list."

    async def execute(self, execution: ToolExecution, **kwargs: Any) -> ToolResult:
        todos = execution.ctx.session_state.todos
        if not todos:
            return ToolResult(content="[]", preview="No todos")
        return ToolResult(content=json.dumps([t.to_dict() for t in todos]), preview=f"{len(todos)} todos")
