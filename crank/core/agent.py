from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from crank.approval.gate import ApprovalGate
from crank.core.models import ToolCallOutcome
from crank.core.parsing import ModelTurn, TurnAccumulator
from crank.core.state import PhaseCallback, TurnPhase
from crank.core.tool_runner import ToolRunner
from crank.events.sse import TextEvent
from crank.llm.base import StreamClient
from crank.llm.types import BlockEnd, StreamEnd, TextDelta, ToolCallStart, ToolInputDelta, UsageUpdate
from crank.logging import get_logger
from crank.tools.core.context import ToolContext
from crank.tools.core.registry import ToolRegistry

_logger = get_logger(__name__)

UsageCallback = Callable[[UsageUpdate], Awaitable[None]]


def limit_notice(max_iterations: int) -> str:
    return f"Stopped: reached max iterations ({max_iterations})."


@dataclass(frozen=True)
class AgentResult:
    text: str  # text of the final assistant turn
    iterations: int  # model calls made
    stopped_at_limit: bool = False
    outcomes: tuple[ToolCallOutcome, ...] = ()
    assistant_text: str = ""  # all assistant text produced during the run


class Agent:
    """Model/tool loop over a message history.

    MODEL_CALL streams one response; if it asked for tools, EXECUTE_TOOLS appends
    the assistant turn, runs the calls and appends their results as one user
    turn, then loops. A response without tool calls ends in DONE.
    """

    def __init__(
        self,
        client: StreamClient,
        model: str,
        system_prompt: str,
        registry: ToolRegistry,
        ctx: ToolContext,
        gate: ApprovalGate | None = None,
        max_iterations: int | None = None,
        max_tokens: int | None = None,
        on_usage: UsageCallback | None = None,
        on_phase_change: PhaseCallback | None = None,
    ):
        self.client = client
        self.model = model
        self.system_prompt = system_prompt
        self.registry = registry
        self.ctx = ctx
        self.gate = gate
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens
        self.on_usage = on_usage
        self.on_phase_change = on_phase_change
        self._phase: TurnPhase | None = None

    @property
    def phase(self) -> TurnPhase | None:
        return self._phase

    async def _set_phase(self, phase: TurnPhase) -> None:
        if phase != self._phase:
            self._phase = phase
            if self.on_phase_change:
                await self.on_phase_change(phase)

    @property
    def _is_top_level(self) -> bool:
        return self.ctx.depth == 0

    async def _call_model(self, messages: list[dict]) -> ModelTurn:
        acc = TurnAccumulator()
        stream = self.client.stream(
            model=self.model,
            system=self.system_prompt,
            messages=messages,
            tools=self.registry.get_schemas() or None,
            max_tokens=self.max_tokens,
        )
        async for event in stream:
            match event:
                case TextDelta(text=text):
                    if not text:
                        continue
                    acc.add_text(text)
                    if self._is_top_level:
                        await self.ctx.emit_event(TextEvent(content=text))
                case ToolCallStart(id=call_id, name=name):
                    acc.start_call(call_id, name)
                case ToolInputDelta(partial_json=partial):
                    acc.add_input(partial)
                case BlockEnd():
                    acc.end_block()
                case UsageUpdate():
                    if self.on_usage:
                        await self.on_usage(event)
                case StreamEnd(stop_reason=reason):
                    acc.stop_reason = reason
        return acc.finish()

    async def run(self, messages: list[dict]) -> AgentResult:
        """Drive the loop, appending to `messages` in place."""
        runner = ToolRunner(self.registry, self.ctx, self.gate)
        outcomes: list[ToolCallOutcome] = []
        texts: list[str] = []

        iteration = 0
        while True:
            if self.max_iterations is not None and iteration >= self.max_iterations:
                notice = limit_notice(self.max_iterations)
                _logger.warning("Turn for session %s hit the iteration limit (%d)", self.ctx.session_id, iteration)
                messages.append({"role": "assistant", "content": notice})
                if self._is_top_level:
                    await self.ctx.emit_event(TextEvent(content=notice))
                await self._set_phase(TurnPhase.DONE)
                return AgentResult(
                    text=notice,
                    iterations=iteration,
                    stopped_at_limit=True,
                    outcomes=tuple(outcomes),
                    assistant_text="\n".join(texts),
                )

            await self._set_phase(TurnPhase.MODEL_CALL)
            try:
                turn = await self._call_model(messages)
            except Exception:
                _logger.exception("Model stream failed (model=%s)", self.model)
                raise
            iteration += 1
            if turn.text:
                texts.append(turn.text)

            if not turn.tool_calls:
                if turn.text:
                    messages.append({"role": "assistant", "content": turn.text})
                await self._set_phase(TurnPhase.DONE)
                return AgentResult(
                    text=turn.text,
                    iterations=iteration,
                    outcomes=tuple(outcomes),
                    assistant_text="\n".join(texts),
                )

            await self._set_phase(TurnPhase.EXECUTE_TOOLS)
            content: list[dict] = [{"type": "text", "text": turn.text}] if turn.text else []
            content.extend(call.to_block() for call in turn.tool_calls)
            messages.append({"role": "assistant", "content": content})

            results = await runner.run_all(turn.tool_calls)
            outcomes.extend(results)
            messages.append({"role": "user", "content": [r.to_block() for r in results]})
