import json
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from crank.constants import SUBTASK_DEFAULT_TOOLS, SUBTASK_MAX_TOKENS
from crank.events.sse import SubtaskCompleteEvent, SubtaskStartEvent
from crank.tools.core.base import Tool, ToolResult
from crank.tools.core.context import ToolExecution

SPAWN_SUBTASK_DESCRIPTION = (
    "Spawn an isolated subtask with its own context window. Use for focused, well-defined work "
    "that does not need your conversation history. Returns a JSON report of what it did."
)


class SpawnSubtaskInput(BaseModel):
    prompt: str = Field(description="Complete, self-contained instructions for the subtask")
    allowed_tools: list[str] | None = Field(
        default=None, description=f"Tools the subtask may use (default: {', '.join(SUBTASK_DEFAULT_TOOLS)})"
    )
    max_tokens: int | None = Field(default=None, description=f"Max output tokens per model call (default: {SUBTASK_MAX_TOKENS})")


class SpawnSubtaskTool(Tool):
    name = "spawn_subtask"
    description = SPAWN_SUBTASK_DESCRIPTION
    input_model = SpawnSubtaskInput

    async def execute(
        self,
        execution: ToolExecution,
        prompt: str,
        allowed_tools: list[str] | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        ctx = execution.ctx
        if not ctx.spawn_fn:
            return ToolResult.error("Subtasks are not available here", "Unavailable")

        subtask_id = str(uuid4())
        await ctx.emit_event(SubtaskStartEvent(id=subtask_id, prompt=prompt))
        try:
            report = await ctx.spawn_fn(
                ctx,
                prompt,
                allowed_tools=allowed_tools or list(SUBTASK_DEFAULT_TOOLS),
                max_tokens=max_tokens or SUBTASK_MAX_TOKENS,
                parent_id=execution.tool_id,
            )
        except Exception as e:
            await ctx.emit_event(SubtaskCompleteEvent(id=subtask_id, success=False, error=str(e)))
            raise

        await ctx.emit_event(
            SubtaskCompleteEvent(
                id=subtask_id,
                summary=report.summary,
                files_created=list(report.files_created),
                files_modified=list(report.files_modified),
                success=report.success,
            )
        )
        return ToolResult(
            content=json.dumps(report.to_dict(), indent=2),
            preview="Subtask completed" if report.success else "Subtask failed",
            is_error=not report.success,
        )
