from dataclasses import dataclass, field

from crank.events.sse import Emit


@dataclass(frozen=True)
class ToolCallRecord:
    name: str
    input: dict


@dataclass(frozen=True)
class TurnCompleted:
    """Published after a turn's post-turn hooks have run."""

    session_id: str
    checkpoint_id: str
    user_message: str
    assistant_text: str
    tool_calls: tuple[ToolCallRecord, ...] = ()
    emit: Emit | None = field(default=None, compare=False, repr=False)
