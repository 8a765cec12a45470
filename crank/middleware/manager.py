from crank.context.models import SessionState
from crank.middleware.base import Middleware
from crank.tools.core.registry import ToolRegistry

CORE_IDENTITY = """You are a skilled software engineer working on coding tasks.
You approach problems methodically, breaking them into manageable steps.

## Key Behaviors
1. ALWAYS update your todo list before and after each task
2. Use the filesystem for context offloading - write notes, plans, and intermediate results
3. For complex subtasks, delegate to spawn_subtask to keep your context clean
4. Explain your reasoning before taking actions"""

TASK_GUIDANCE = """## General Guidelines
- Be thorough but efficient
- Verify your work before marking tasks complete
- Ask for clarification if requirements are unclear
- Keep the user informed of progress"""

PROMPT_SEPARATOR = "\n\n---\n\n"


class MiddlewareManager:
    def __init__(self, registry: ToolRegistry | None = None):
        self.registry = registry or ToolRegistry()
        self._middlewares: list[Middleware] = []

    def register(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)
        for tool in middleware.tools:
            self.registry.register(tool)

    @property
    def middlewares(self) -> list[Middleware]:
        return list(self._middlewares)

    def get(self, name: str) -> Middleware | None:
        return next((m for m in self._middlewares if m.name == name), None)

    def compose_system_prompt(self) -> str:
        prompts = [m.system_prompt for m in self._middlewares if m.system_prompt]
        return PROMPT_SEPARATOR.join([CORE_IDENTITY, *prompts, TASK_GUIDANCE])

    async def run_before_hooks(self, state: SessionState) -> SessionState:
        for middleware in self._middlewares:
            state = await middleware.before_turn(state)
        return state

    async def run_after_hooks(self, state: SessionState) -> SessionState:
        for middleware in self._middlewares:
            state = await middleware.after_turn(state)
        return state
