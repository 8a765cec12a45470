import asyncio
from collections.abc import Coroutine
from typing import Any

import crank.llm.router as llm_router
from crank.approval.gate import ApprovalGate
from crank.channel import Channel
from crank.config import Config, get_config
from crank.context.accounting import ContextTracker
from crank.context.store import SessionStore
from crank.core.checkpoints import CheckpointStore
from crank.core.naming import CheckpointNamer
from crank.core.orchestrator import Orchestrator, TurnConfig
from crank.events.internal import TurnCompleted
from crank.events.sse import Emit
from crank.logging import get_logger
from crank.middleware.filesystem import FilesystemMiddleware
from crank.middleware.manager import MiddlewareManager
from crank.middleware.subagent import SubAgentMiddleware
from crank.middleware.todos import TodoMiddleware

_logger = get_logger(__name__)


class Runtime:
    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        llm_router.init(self.config)

        self.channel = Channel()
        self.sessions = SessionStore()
        self.gate = ApprovalGate(timeout=self.config.approval_timeout)
        self.checkpoints = CheckpointStore()
        self.context = ContextTracker(
            self.config.chat_model,
            warn_percent=self.config.context_warn_percent,
            soft_limit_percent=self.config.context_soft_limit_percent,
        )

        self.middleware = MiddlewareManager()
        self.middleware.register(TodoMiddleware())
        self.middleware.register(FilesystemMiddleware(shell_timeout=self.config.shell_timeout))
        self.middleware.register(SubAgentMiddleware())

        self.orchestrator = Orchestrator(
            middleware=self.middleware,
            gate=self.gate,
            checkpoints=self.checkpoints,
            context=self.context,
            model=self.config.chat_model,
            client_resolver=llm_router.get_stream_client,
            sessions=self.sessions,
            channel=self.channel,
            max_iterations=self.config.max_iterations,
            subtask_max_iterations=self.config.subtask_max_iterations,
            max_output_tokens=self.config.max_output_tokens,
        )

        self.namer = CheckpointNamer(
            self.checkpoints,
            client_resolver=llm_router.get_stream_client,
            model=self.config.naming_model,
            sessions=self.sessions,
        )
        self.channel.subscribe(TurnCompleted, self.namer.on_turn_completed)

        self._tasks: set[asyncio.Task] = set()
        self._config_lock = asyncio.Lock()

    def turn_config(self, emit: Emit | None = None) -> TurnConfig:
        return TurnConfig(working_dir=self.config.working_dir, emit=emit)

    def set_chat_model(self, model: str) -> None:
        self.config.chat_model = model
        self.orchestrator.set_model(model)

    def start_task(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        # Turns outlive the request that started them; keep a reference until done
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.channel.drain(timeout=self.config.naming_grace_seconds)
        await llm_router.close()
        _logger.info("Runtime closed")


_runtime: Runtime | None = None
_runtime_lock = asyncio.Lock()


async def get_runtime_async() -> Runtime:
    global _runtime
    async with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
    return _runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise RuntimeError("Runtime not initialized. Call get_runtime_async() first.")
    return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    global _runtime
    _runtime = runtime


async def reset_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None
