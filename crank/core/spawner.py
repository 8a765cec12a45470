from collections.abc import Sequence
from dataclasses import dataclass

from crank.approval.gate import ApprovalGate
from crank.constants import SUBTASK_MAX_ITERATIONS
from crank.llm.base import StreamClient
from crank.logging import get_logger
from crank.tools.core.context import ToolContext
from crank.tools.core.registry import ToolRegistry

_logger = get_logger(__name__)

SUBTASK_SYSTEM_PROMPT = """You are a focused assistant completing a specific subtask.
Complete the task efficiently and report your results.
You have access to file tools for reading and writing files.
Work within the scope of the task - do not expand beyond what is asked."""

SUBTASK_LIMIT_SUMMARY = "Subtask completed (max iterations reached)"

# Subtasks never spawn subtasks of their own
EXCLUDED_TOOLS = frozenset({"spawn_subtask"})


@dataclass(frozen=True)
class SubtaskReport:
    summary: str
    files_created: tuple[str, ...] = ()
    files_modified: tuple[str, ...] = ()
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "files_created": list(self.files_created),
            "files_modified": list(self.files_modified),
            "success": self.success,
        }


def create_spawn_fn(
    registry: ToolRegistry,
    client: StreamClient,
    model: str,
    gate: ApprovalGate | None,
    max_iterations: int = SUBTASK_MAX_ITERATIONS,
):
    async def spawn_subtask(
        calling_ctx: ToolContext,
        prompt: str,
        *,
        allowed_tools: Sequence[str],
        max_tokens: int | None = None,
        parent_id: str = "",
    ) -> SubtaskReport:
        from crank.core.agent import Agent

        sub_registry = registry.subset(allowed_tools, exclude=EXCLUDED_TOOLS)
        # Same session state and id: file notes land in the parent session and
        # approvals go through the parent's trust.
        child_ctx = ToolContext(
            session_state=calling_ctx.session_state,
            working_dir=calling_ctx.working_dir,
            registry=sub_registry,
            emit=calling_ctx.emit,
            depth=calling_ctx.depth + 1,
            parent_id=parent_id,
        )

        agent = Agent(
            client=client,
            model=model,
            system_prompt=SUBTASK_SYSTEM_PROMPT,
            registry=sub_registry,
            ctx=child_ctx,
            gate=gate,
            max_iterations=max_iterations,
            max_tokens=max_tokens,
        )
        messages: list[dict] = [{"role": "user", "content": prompt}]
        result = await agent.run(messages)

        created = [o.call.args.get("path", "") for o in result.outcomes if o.call.name == "write_file" and not o.is_error]
        modified = [o.call.args.get("path", "") for o in result.outcomes if o.call.name == "edit_file" and not o.is_error]

        if result.stopped_at_limit:
            summary = SUBTASK_LIMIT_SUMMARY
        else:
            summary = result.text or "Subtask completed"
        _logger.debug("Subtask finished after %d iterations", result.iterations)

        return SubtaskReport(
            summary=summary,
            files_created=tuple(created),
            files_modified=tuple(modified),
        )

    return spawn_subtask
