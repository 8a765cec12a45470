import json
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from enum import StrEnum


class EventType(StrEnum):
    TEXT = "text"
    CHECKPOINT_CREATED = "checkpoint_created"
    CHECKPOINT_UPDATED = "checkpoint_updated"
    CONTEXT_UPDATE = "context_update"
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_RESULT = "approval_result"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TODO_UPDATE = "todo_update"
    SUBTASK_START = "subtask_start"
    SUBTASK_COMPLETE = "subtask_complete"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class SSEEvent:
    type: EventType

    def to_sse(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return {"event": self.type.value, "data": json.dumps(data)}

    def to_sse_string(self) -> str:
        sse = self.to_sse()
        return f"event: {sse['event']}\ndata: {sse['data']}\n\n"


@dataclass(frozen=True)
class TextEvent(SSEEvent):
    type: EventType = field(default=EventType.TEXT, init=False)
    content: str


@dataclass(frozen=True)
class CheckpointCreatedEvent(SSEEvent):
    type: EventType = field(default=EventType.CHECKPOINT_CREATED, init=False)
    id: str


@dataclass(frozen=True)
class CheckpointUpdatedEvent(SSEEvent):
    type: EventType = field(default=EventType.CHECKPOINT_UPDATED, init=False)
    id: str
    name: str
    action_summary: str | None = None


@dataclass(frozen=True)
class ContextUpdateEvent(SSEEvent):
    type: EventType = field(default=EventType.CONTEXT_UPDATE, init=False)
    input_tokens: int
    output_tokens: int
    total_tokens: int
    percentage: float
    warning: bool
    at_soft_limit: bool


@dataclass(frozen=True)
class ApprovalRequiredEvent(SSEEvent):
    type: EventType = field(default=EventType.APPROVAL_REQUIRED, init=False)
    request: dict  # ApprovalRequest.model_dump()


@dataclass(frozen=True)
class ApprovalResultEvent(SSEEvent):
    type: EventType = field(default=EventType.APPROVAL_RESULT, init=False)
    request_id: str
    approved: bool


@dataclass(frozen=True)
class ToolCallEvent(SSEEvent):
    type: EventType = field(default=EventType.TOOL_CALL, init=False)
    tool_id: str
    name: str
    args: dict
    depth: int = 0  # 0 = top-level, >0 = subtask
    parent_id: str = ""


@dataclass(frozen=True)
class ToolResultEvent(SSEEvent):
    type: EventType = field(default=EventType.TOOL_RESULT, init=False)
    tool_id: str
    name: str
    result: str
    is_error: bool = False
    depth: int = 0
    parent_id: str = ""
    duration_ms: int = 0


@dataclass(frozen=True)
class TodoUpdateEvent(SSEEvent):
    type: EventType = field(default=EventType.TODO_UPDATE, init=False)
    todos: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class SubtaskStartEvent(SSEEvent):
    type: EventType = field(default=EventType.SUBTASK_START, init=False)
    id: str
    prompt: str


@dataclass(frozen=True)
class SubtaskCompleteEvent(SSEEvent):
    type: EventType = field(default=EventType.SUBTASK_COMPLETE, init=False)
    id: str
    summary: str = ""
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None


@dataclass(frozen=True)
class DoneEvent(SSEEvent):
    type: EventType = field(default=EventType.DONE, init=False)
    session_id: str
    checkpoint_id: str
    iterations: int = 0
    stopped_at_limit: bool = False


@dataclass(frozen=True)
class ErrorEvent(SSEEvent):
    type: EventType = field(default=EventType.ERROR, init=False)
    message: str
    recoverable: bool = False


type Notification = (
    TextEvent
    | CheckpointCreatedEvent
    | CheckpointUpdatedEvent
    | ContextUpdateEvent
    | ApprovalRequiredEvent
    | ApprovalResultEvent
    | ToolCallEvent
    | ToolResultEvent
    | TodoUpdateEvent
    | SubtaskStartEvent
    | SubtaskCompleteEvent
    | DoneEvent
    | ErrorEvent
)

Emit = Callable[[SSEEvent], Awaitable[None]]
