import json
from dataclasses import dataclass, field

from crank.core.models import PendingToolCall
from crank.logging import get_logger

_logger = get_logger(__name__)


def parse_tool_arguments(arguments: str | None) -> dict:
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError:
        _logger.warning("Malformed tool arguments: %.200s", arguments)
        return {}
    if not isinstance(parsed, dict):
        _logger.warning("Tool arguments are not an object: %.200s", arguments)
        return {}
    return parsed


@dataclass(frozen=True)
class ModelTurn:
    text: str
    tool_calls: tuple[PendingToolCall, ...]
    stop_reason: str | None = None


@dataclass
class _CallBuffer:
    id: str
    name: str
    parts: list[str] = field(default_factory=list)


class TurnAccumulator:
    """Collects one streamed model response into text plus ordered tool calls.

    A call's input buffer closes at the end of its content block; a new call
    starting while another is open closes the open one first.
    """

    def __init__(self):
        self._text: list[str] = []
        self._calls: list[PendingToolCall] = []
        self._open: _CallBuffer | None = None
        self.stop_reason: str | None = None

    def add_text(self, text: str) -> None:
        self._text.append(text)

    def start_call(self, call_id: str, name: str) -> None:
        self._close()
        self._open = _CallBuffer(call_id, name)

    def add_input(self, partial_json: str) -> None:
        if self._open is not None:
            self._open.parts.append(partial_json)

    def end_block(self) -> None:
        self._close()

    def _close(self) -> None:
        if self._open is None:
            return
        raw = "".join(self._open.parts)
        self._calls.append(
            PendingToolCall(id=self._open.id, name=self._open.name, args=parse_tool_arguments(raw))
        )
        self._open = None

    def finish(self) -> ModelTurn:
        self._close()
        return ModelTurn(text="".join(self._text), tool_calls=tuple(self._calls), stop_reason=self.stop_reason)
