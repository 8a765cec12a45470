from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from crank.approval.gate import ApprovalGate
from crank.channel import Channel
from crank.constants import AGENT_MAX_ITERATIONS, SUBTASK_MAX_ITERATIONS
from crank.context.accounting import ContextTracker
from crank.context.models import Checkpoint, SessionState
from crank.context.store import SessionStore
from crank.core.agent import Agent
from crank.core.checkpoints import CheckpointStore
from crank.core.spawner import create_spawn_fn
from crank.errors import SessionBusyError
from crank.events.internal import ToolCallRecord, TurnCompleted
from crank.events.sse import CheckpointCreatedEvent, ContextUpdateEvent, Emit
from crank.llm.base import StreamClient
from crank.llm.router import get_stream_client
from crank.llm.types import UsageUpdate
from crank.logging import get_logger
from crank.middleware.manager import MiddlewareManager
from crank.tools.core.context import ToolContext

_logger = get_logger(__name__)


@dataclass(frozen=True)
class TurnConfig:
    working_dir: Path
    emit: Emit | None = None


@dataclass(frozen=True)
class TurnResult:
    checkpoint_id: str
    text: str
    iterations: int
    stopped_at_limit: bool = False


class Orchestrator:
    """Owns live session state and drives user turns to completion.

    Each turn appends the user message, snapshots a checkpoint (the "undo this
    turn" target), runs pre-turn hooks, loops model calls and tool execution
    until the model stops asking for tools, runs post-turn hooks, then hands
    the turn to background naming via the channel.
    """

    def __init__(
        self,
        middleware: MiddlewareManager,
        gate: ApprovalGate,
        checkpoints: CheckpointStore,
        context: ContextTracker,
        model: str,
        client_resolver: Callable[[str], StreamClient] = get_stream_client,
        sessions: SessionStore | None = None,
        channel: Channel | None = None,
        max_iterations: int | None = AGENT_MAX_ITERATIONS,
        subtask_max_iterations: int = SUBTASK_MAX_ITERATIONS,
        max_output_tokens: int | None = None,
    ):
        self.middleware = middleware
        self.gate = gate
        self.checkpoints = checkpoints
        self.context = context
        self.model = model
        self.client_resolver = client_resolver
        self.sessions = sessions or SessionStore()
        self.channel = channel or Channel()
        self.max_iterations = max_iterations
        self.subtask_max_iterations = subtask_max_iterations
        self.max_output_tokens = max_output_tokens

    def get_or_create_state(self, session_id: str) -> SessionState:
        return self.sessions.get_or_create(session_id)

    def set_model(self, model: str) -> None:
        self.model = model
        self.context.set_model(model)

    def _claim(self, session_id: str):
        if self.sessions.is_busy(session_id):
            raise SessionBusyError(session_id)
        return self.sessions.lock(session_id)

    async def process_message(self, session_id: str, user_text: str, config: TurnConfig) -> TurnResult:
        async with self._claim(session_id):
            return await self._process(session_id, user_text, config)

    async def _process(self, session_id: str, user_text: str, config: TurnConfig) -> TurnResult:
        state = self.get_or_create_state(session_id)
        state.messages.append({"role": "user", "content": user_text})

        checkpoint_id = self.checkpoints.create(state)
        if checkpoint := self.checkpoints.get(session_id, checkpoint_id):
            state.checkpoints[checkpoint_id] = checkpoint
        if config.emit:
            await config.emit(CheckpointCreatedEvent(id=checkpoint_id))

        state = await self.middleware.run_before_hooks(state)
        self.sessions.put(state)

        client = self.client_resolver(self.model)
        registry = self.middleware.registry
        ctx = ToolContext(
            session_state=state,
            working_dir=config.working_dir,
            registry=registry,
            emit=config.emit,
        )
        ctx.spawn_fn = create_spawn_fn(
            registry=registry,
            client=client,
            model=self.model,
            gate=self.gate,
            max_iterations=self.subtask_max_iterations,
        )

        async def on_usage(update: UsageUpdate) -> None:
            usage = self.context.update_usage(session_id, update.input_tokens, update.output_tokens)
            ctx.session_state.context_usage = usage
            if config.emit:
                await config.emit(
                    ContextUpdateEvent(
                        input_tokens=usage.input_tokens,
                        output_tokens=usage.output_tokens,
                        total_tokens=usage.total_tokens,
                        percentage=usage.percentage,
                        warning=usage.warning,
                        at_soft_limit=usage.at_soft_limit,
                    )
                )

        agent = Agent(
            client=client,
            model=self.model,
            system_prompt=self.middleware.compose_system_prompt(),
            registry=registry,
            ctx=ctx,
            gate=self.gate,
            max_iterations=self.max_iterations,
            max_tokens=self.max_output_tokens,
            on_usage=on_usage,
        )
        result = await agent.run(state.messages)

        state = await self.middleware.run_after_hooks(state)
        self.sessions.put(state)

        self.channel.publish(
            TurnCompleted(
                session_id=session_id,
                checkpoint_id=checkpoint_id,
                user_message=user_text,
                assistant_text=result.assistant_text,
                tool_calls=tuple(ToolCallRecord(o.call.name, o.call.args) for o in result.outcomes),
                emit=config.emit,
            )
        )

        return TurnResult(
            checkpoint_id=checkpoint_id,
            text=result.text,
            iterations=result.iterations,
            stopped_at_limit=result.stopped_at_limit,
        )

    def _install(self, state: SessionState) -> None:
        self.sessions.put(state)
        self.context.set_usage(state.session_id, state.context_usage)

    def revert_to_checkpoint(self, session_id: str, checkpoint_id: str) -> bool:
        if self.sessions.is_busy(session_id):
            raise SessionBusyError(session_id)
        state = self.checkpoints.revert(session_id, checkpoint_id)
        if state is None:
            return False
        self._install(state)
        return True

    def fork_from_checkpoint(self, session_id: str, checkpoint_id: str, new_session_id: str) -> bool:
        if self.sessions.is_busy(new_session_id):
            raise SessionBusyError(new_session_id)
        state = self.checkpoints.fork(session_id, checkpoint_id, new_session_id)
        if state is None:
            return False
        self._install(state)
        return True

    def list_checkpoints(self, session_id: str) -> list[Checkpoint]:
        return self.checkpoints.list_checkpoints(session_id)

    def discard_session(self, session_id: str) -> bool:
        if self.sessions.is_busy(session_id):
            raise SessionBusyError(session_id)
        existed = self.sessions.delete(session_id)
        self.checkpoints.discard(session_id)
        self.gate.clear_session(session_id)
        self.context.reset_usage(session_id)
        return existed
