from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


class TodoStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Todo:
    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING

    def to_dict(self) -> dict:
        return {"id": self.id, "content": self.content, "status": self.status.value}


@dataclass(frozen=True)
class ContextUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    percentage: float = 0.0
    warning: bool = False
    at_soft_limit: bool = False


@dataclass(frozen=True)
class Checkpoint:
    id: str
    timestamp: int  # wall-clock ms
    name: str | None = None
    action_summary: str | None = None
    _snapshot: "SessionState | None" = field(default=None, repr=False, compare=False)

    @property
    def state(self) -> "SessionState":
        """A fresh copy of the captured state; the snapshot itself is never handed out."""
        return self.restore()

    def restore(
        self,
        *,
        session_id: str | None = None,
        checkpoints: dict[str, "Checkpoint"] | None = None,
    ) -> "SessionState":
        return self._snapshot.clone(session_id=session_id, checkpoints=checkpoints)

    def with_metadata(self, name: str, action_summary: str | None = None) -> "Checkpoint":
        if action_summary is None:
            return replace(self, name=name)
        return replace(self, name=name, action_summary=action_summary)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "name": self.name,
            "action_summary": self.action_summary,
        }


@dataclass
class SessionState:
    session_id: str
    messages: list[dict] = field(default_factory=list)
    todos: list[Todo] = field(default_factory=list)
    # path -> note left by the file tools ("created", "modified", ...)
    files: dict[str, str] = field(default_factory=dict)
    context_usage: ContextUsage = field(default_factory=ContextUsage)
    checkpoints: dict[str, Checkpoint] = field(default_factory=dict)

    def clone(
        self,
        *,
        session_id: str | None = None,
        checkpoints: dict[str, Checkpoint] | None = None,
    ) -> "SessionState":
        """Structurally independent copy.

        Messages are copied block by block; todos and usage are frozen so the
        new lists/dicts can share them. The copy's checkpoint collection is empty
        unless one is supplied.
        """
        return SessionState(
            session_id=session_id or self.session_id,
            messages=[clone_message(m) for m in self.messages],
            todos=list(self.todos),
            files=dict(self.files),
            context_usage=self.context_usage,
            checkpoints=dict(checkpoints) if checkpoints else {},
        )


def clone_message(message: dict) -> dict:
    return _clone_json(message)


def _clone_json(value: Any) -> Any:
    match value:
        case dict():
            return {k: _clone_json(v) for k, v in value.items()}
        case list() | tuple():
            return [_clone_json(v) for v in value]
        case _:
            # str, int, float, bool, None
            return value
