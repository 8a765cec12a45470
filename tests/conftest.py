import asyncio
import copy
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from crank.approval.gate import ApprovalGate
from crank.approval.models import ApprovalResponse, Decision
from crank.context.accounting import ContextTracker
from crank.core.checkpoints import CheckpointStore
from crank.core.orchestrator import Orchestrator, TurnConfig
from crank.events.sse import ApprovalRequiredEvent, SSEEvent
from crank.llm.base import StreamClient
from crank.llm.types import BlockEnd, StreamEnd, StreamEvent, TextDelta, ToolCallStart, ToolInputDelta, UsageUpdate
from crank.middleware.filesystem import FilesystemMiddleware
from crank.middleware.manager import MiddlewareManager
from crank.middleware.subagent import SubAgentMiddleware
from crank.middleware.todos import TodoMiddleware

TEST_MODEL = "claude-sonnet-4-20250514"


class ScriptedStreamClient(StreamClient):
    """Replays one scripted event list per `stream` call and records what it was sent."""

    def __init__(self, responses=(), completion: str | Exception = "Scripted name", delay: float = 0.0):
        self.responses: list[list] = list(responses)
        self.completion = completion
        self.delay = delay
        self.calls: list[dict] = []
        self.prompts: list[str] = []
        self.closed = False

    @staticmethod
    def text(text: str, input_tokens: int = 100, output_tokens: int = 20) -> list[StreamEvent]:
        return [
            TextDelta(text=text),
            BlockEnd(),
            UsageUpdate(input_tokens=input_tokens, output_tokens=output_tokens),
            StreamEnd(stop_reason="end_turn"),
        ]

    @staticmethod
    def tools(*calls: tuple[str, str, str], text: str = "", input_tokens: int = 100, output_tokens: int = 20):
        """`calls` are (id, name, raw JSON input) triples."""
        events: list[StreamEvent] = []
        if text:
            events += [TextDelta(text=text), BlockEnd()]
        for call_id, name, raw in calls:
            events += [ToolCallStart(id=call_id, name=name), ToolInputDelta(partial_json=raw), BlockEnd()]
        events += [UsageUpdate(input_tokens=input_tokens, output_tokens=output_tokens), StreamEnd("tool_use")]
        return events

    async def stream(self, *, model, system, messages, tools=None, max_tokens=None) -> AsyncIterator[StreamEvent]:
        self.calls.append(
            {
                "model": model,
                "system": system,
                "messages": copy.deepcopy(messages),
                "tools": [t["function"]["name"] for t in tools or []],
                "max_tokens": max_tokens,
            }
        )
        if not self.responses:
            raise AssertionError("No scripted response left")
        script = self.responses.pop(0)
        for event in script:
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(event, Exception):
                raise event
            yield event

    async def _complete(self, *, model: str, prompt: str, max_tokens: int) -> str:
        self.prompts.append(prompt)
        if isinstance(self.completion, Exception):
            raise self.completion
        return self.completion

    async def close(self) -> None:
        self.closed = True


class EventRecorder:
    """Collects notifications; optionally answers approval requests as they arrive."""

    def __init__(self, gate: ApprovalGate, decision: Decision | None = None, pattern: str | None = None):
        self.gate = gate
        self.decision = decision
        self.pattern = pattern
        self.events: list[SSEEvent] = []

    async def __call__(self, event: SSEEvent) -> None:
        self.events.append(event)
        if isinstance(event, ApprovalRequiredEvent) and self.decision is not None:
            self.gate.handle_response(
                ApprovalResponse(request_id=event.request["request_id"], decision=self.decision, pattern=self.pattern)
            )

    def of_type(self, cls: type) -> list:
        return [e for e in self.events if isinstance(e, cls)]

    @property
    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


@pytest.fixture
def client() -> ScriptedStreamClient:
    return ScriptedStreamClient()


@pytest.fixture
def gate() -> ApprovalGate:
    return ApprovalGate(timeout=2)


@pytest.fixture
def checkpoints() -> CheckpointStore:
    return CheckpointStore()


@pytest.fixture
def middleware() -> MiddlewareManager:
    manager = MiddlewareManager()
    manager.register(TodoMiddleware())
    manager.register(FilesystemMiddleware())
    manager.register(SubAgentMiddleware())
    return manager


@pytest.fixture
def orchestrator(middleware, gate, checkpoints, client) -> Orchestrator:
    return Orchestrator(
        middleware=middleware,
        gate=gate,
        checkpoints=checkpoints,
        context=ContextTracker(TEST_MODEL),
        model=TEST_MODEL,
        client_resolver=lambda _model: client,
    )


@pytest.fixture
def recorder(gate) -> EventRecorder:
    return EventRecorder(gate)


@pytest.fixture
def approving_recorder(gate) -> EventRecorder:
    return EventRecorder(gate, decision=Decision.ALLOW_ONCE)


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def turn_config(workdir, recorder) -> TurnConfig:
    return TurnConfig(working_dir=workdir, emit=recorder)


@pytest.fixture
def make_recorder(gate):
    def make(decision: Decision | None = None, pattern: str | None = None) -> EventRecorder:
        return EventRecorder(gate, decision=decision, pattern=pattern)

    return make
