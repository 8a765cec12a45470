from dataclasses import dataclass

from crank.constants import CHARS_PER_TOKEN, CONTEXT_SOFT_LIMIT_PERCENT, CONTEXT_WARN_PERCENT
from crank.context.models import ContextUsage
from crank.llm.models import context_window


@dataclass
class _Counters:
    input_tokens: int = 0
    output_tokens: int = 0


class ContextTracker:
    """Per-session token accounting against the active model's window.

    Input tokens are replaced on every update (the prompt already includes the
    whole history); output tokens accumulate.
    """

    def __init__(
        self,
        model: str,
        warn_percent: float = CONTEXT_WARN_PERCENT,
        soft_limit_percent: float = CONTEXT_SOFT_LIMIT_PERCENT,
    ):
        self.warn_percent = warn_percent
        self.soft_limit_percent = soft_limit_percent
        self._counters: dict[str, _Counters] = {}
        self.set_model(model)

    def set_model(self, model: str) -> None:
        self.model = model
        self.max_tokens = context_window(model)

    def update_usage(self, session_id: str, input_tokens: int, output_tokens: int) -> ContextUsage:
        counters = self._counters.setdefault(session_id, _Counters())
        counters.input_tokens = input_tokens
        counters.output_tokens += output_tokens
        return self.get_usage(session_id)

    def get_usage(self, session_id: str) -> ContextUsage:
        counters = self._counters.get(session_id) or _Counters()
        total = counters.input_tokens + counters.output_tokens
        percentage = round(total / self.max_tokens * 100, 2) if self.max_tokens else 0.0
        return ContextUsage(
            input_tokens=counters.input_tokens,
            output_tokens=counters.output_tokens,
            total_tokens=total,
            percentage=percentage,
            warning=percentage >= self.warn_percent,
            at_soft_limit=percentage >= self.soft_limit_percent,
        )

    def set_usage(self, session_id: str, usage: ContextUsage) -> None:
        self._counters[session_id] = _Counters(usage.input_tokens, usage.output_tokens)

    def reset_usage(self, session_id: str) -> None:
        self._counters.pop(session_id, None)


def estimate_tokens(text: str) -> int:
    return -(-len(text) // CHARS_PER_TOKEN)
