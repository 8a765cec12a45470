from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from crank.context.models import SessionState
from crank.events.sse import Emit, SSEEvent

if TYPE_CHECKING:
    from crank.tools.core.registry import ToolRegistry


@dataclass
class ToolContext:
    """Shared context for tool execution."""

    session_state: SessionState
    working_dir: Path
    registry: "ToolRegistry"
    emit: Emit | None = None
    spawn_fn: Callable[..., Awaitable[Any]] | None = None
    depth: int = 0  # 0 = top-level turn, >0 = subtask
    parent_id: str = ""

    @property
    def session_id(self) -> str:
        return self.session_state.session_id

    async def emit_event(self, event: SSEEvent) -> None:
        if self.emit:
            await self.emit(event)


@dataclass
class ToolExecution:
    """Per-tool execution context. Pairs tool identity with shared context."""

    tool_id: str
    tool_name: str
    ctx: ToolContext
