import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from crank.constants import NAME_FALLBACK_WORDS, NAME_MAX_WORDS, NAME_SUMMARY_TOOLS, SUMMARY_INPUT_LIMIT
from crank.context.store import SessionStore
from crank.core.checkpoints import CheckpointStore
from crank.events.internal import ToolCallRecord, TurnCompleted
from crank.events.sse import CheckpointUpdatedEvent
from crank.llm.base import StreamClient
from crank.logging import get_logger

_logger = get_logger(__name__)

_PHRASES = [
    re.compile(r"I'll\s+([\w\s]{3,30}?)(?:\.|,|!|\n|$)", re.IGNORECASE),
    re.compile(r"Let me\s+([\w\s]{3,30}?)(?:\.|,|!|\n|$)", re.IGNORECASE),
    re.compile(r"(?:Done!?|Completed|Finished)\s+([\w\s]{3,30}?)(?:\.|,|!|\n|$)", re.IGNORECASE),
]
_FIRST_SENTENCE = re.compile(r"^([^.!?\n]{5,40})[.!?]")

_TRAILING_WORDS = frozenset({"the", "a", "an", "to", "for", "with", "in", "on", "at", "by"})

_SUMMARIZE_PROMPT = """Summarize this coding action in 2-5 words. Be concise.
User asked: "{user}"
Actions: {actions}
Reply with ONLY the summary, no quotes or punctuation."""


@dataclass(frozen=True)
class CheckpointName:
    name: str
    summary: str


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:]


def _basename(path: object) -> str:
    return str(path or "").rsplit("/", 1)[-1] or "file"


def clean_and_truncate(text: str) -> str:
    words = text.split()[:NAME_MAX_WORDS]
    while len(words) > 2 and words[-1].lower() in _TRAILING_WORDS:
        words.pop()
    if words:
        words[0] = _capitalize(words[0])
    return " ".join(words)


def extract_from_text(text: str) -> str | None:
    if not text or len(text) < 5:
        return None
    for pattern in _PHRASES:
        if m := pattern.search(text):
            return clean_and_truncate(m.group(1))
    if m := _FIRST_SENTENCE.match(text):
        return clean_and_truncate(m.group(1))
    return None


def name_from_tools(tools: Sequence[ToolCallRecord]) -> str:
    if not tools:
        return "Respond to user"

    first = tools[0]
    match first.name:
        case "write_file":
            return f"Create {_basename(first.input.get('path'))}"
        case "edit_file":
            return f"Edit {_basename(first.input.get('path'))}"
        case "execute_shell":
            parts = str(first.input.get("command", "")).split()
            base = parts[0] if parts else ""
            sub = parts[1] if len(parts) > 1 else ""
            if base == "npm":
                return f"Run npm {sub}"
            if base == "git":
                return f"Git {sub}"
            return f"Run {base}"
        case "read_file":
            if len(tools) == 1:
                return f"Read {_basename(first.input.get('path'))}"
            return "Read files"
        case "list_directory":
            return "Explore directory"
        case "spawn_subtask":
            return "Run subtask"
        case _:
            return f"Run {first.name}"


def build_tool_summary(tools: Sequence[ToolCallRecord]) -> str:
    if not tools:
        return "Text response only"

    def describe(t: ToolCallRecord) -> str:
        match t.name:
            case "write_file":
                return f"Write {t.input.get('path')}"
            case "edit_file":
                return f"Edit {t.input.get('path')}"
            case "execute_shell":
                return f"Run: {str(t.input.get('command', ''))[:SUMMARY_INPUT_LIMIT]}"
            case "read_file":
                return f"Read {t.input.get('path')}"
            case "list_directory":
                return f"List {t.input.get('path')}"
            case _:
                return t.name

    summaries = [describe(t) for t in tools[:NAME_SUMMARY_TOOLS]]
    if len(tools) > NAME_SUMMARY_TOOLS:
        summaries.append(f"... and {len(tools) - NAME_SUMMARY_TOOLS} more")
    return ", ".join(summaries)


def truncate_user_message(message: str) -> str:
    words = message.split()
    head = words[:NAME_FALLBACK_WORDS]
    if head:
        head[0] = _capitalize(head[0])
    return " ".join(head) + ("..." if len(words) > NAME_FALLBACK_WORDS else "")


class CheckpointNamer:
    """Attaches a short name and action summary to a turn's checkpoint.

    Cheap heuristics first; the naming model is only asked about turns with
    five or more tool calls.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        client_resolver: Callable[[str], StreamClient] | None = None,
        model: str | None = None,
        sessions: SessionStore | None = None,
    ):
        self.checkpoints = checkpoints
        self.client_resolver = client_resolver
        self.model = model
        self.sessions = sessions

    async def generate(
        self, user_message: str, assistant_text: str, tool_calls: Sequence[ToolCallRecord]
    ) -> CheckpointName:
        summary = build_tool_summary(tool_calls)

        if extracted := extract_from_text(assistant_text):
            return CheckpointName(extracted, summary)

        if 0 < len(tool_calls) <= 3:
            return CheckpointName(name_from_tools(tool_calls), summary)

        if len(tool_calls) >= 5 and self.client_resolver and self.model:
            return CheckpointName(await self._summarize(user_message, tool_calls), summary)

        if tool_calls:
            return CheckpointName(name_from_tools(tool_calls), summary)

        return CheckpointName(truncate_user_message(user_message), summary)

    async def _summarize(self, user_message: str, tool_calls: Sequence[ToolCallRecord]) -> str:
        actions = []
        for t in tool_calls[:10]:
            match t.name:
                case "write_file":
                    actions.append(f"wrote {t.input.get('path')}")
                case "edit_file":
                    actions.append(f"edited {t.input.get('path')}")
                case "execute_shell":
                    actions.append(f"ran {str(t.input.get('command', ''))[:30]}")
                case _:
                    actions.append(t.name)
        prompt = _SUMMARIZE_PROMPT.format(user=user_message[:100], actions=", ".join(actions))

        try:
            client = self.client_resolver(self.model)
            text = await client.complete(model=self.model, prompt=prompt, max_tokens=20)
        except Exception:
            _logger.warning("Checkpoint summarization failed, using the user message", exc_info=True)
            return truncate_user_message(user_message)

        name = re.sub(r'[".]', "", text).strip()
        return name or truncate_user_message(user_message)

    async def on_turn_completed(self, event: TurnCompleted) -> None:
        result = await self.generate(event.user_message, event.assistant_text, event.tool_calls)
        updated = self.checkpoints.update_metadata(event.session_id, event.checkpoint_id, result.name, result.summary)
        if updated is None:
            return
        if self.sessions is not None:
            self.sessions.refresh_checkpoint(updated)
        if event.emit:
            await event.emit(
                CheckpointUpdatedEvent(id=updated.id, name=updated.name or "", action_summary=updated.action_summary)
            )
