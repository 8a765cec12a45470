from crank.approval.gate import ApprovalGate
from crank.approval.models import ApprovalRequest
from crank.core.models import PendingToolCall, ToolCallOutcome
from crank.events.sse import ApprovalRequiredEvent, ApprovalResultEvent, ToolCallEvent, ToolResultEvent
from crank.logging import get_logger
from crank.tools.core.base import ToolResult
from crank.tools.core.context import ToolContext, ToolExecution
from crank.tools.core.registry import ToolRegistry
from crank.utils import ms_now

_logger = get_logger(__name__)

DENIED = "Tool execution denied by user"


class ToolRunner:
    """Gives every requested call exactly one outcome, in request order.

    Denials, unknown tools and tool exceptions all become error outcomes;
    nothing a tool does escapes this layer.
    """

    def __init__(self, registry: ToolRegistry, ctx: ToolContext, gate: ApprovalGate | None = None):
        self.registry = registry
        self.ctx = ctx
        self.gate = gate

    async def run_all(self, calls: tuple[PendingToolCall, ...] | list[PendingToolCall]) -> list[ToolCallOutcome]:
        outcomes = []
        for call in calls:
            outcomes.append(await self.run_one(call))
        return outcomes

    async def run_one(self, call: PendingToolCall) -> ToolCallOutcome:
        await self.ctx.emit_event(
            ToolCallEvent(
                tool_id=call.id,
                name=call.name,
                args=call.args,
                depth=self.ctx.depth,
                parent_id=self.ctx.parent_id,
            )
        )

        start_ms = ms_now()
        result = await self._dispose(call)
        duration_ms = ms_now() - start_ms

        content = result.content
        if result.is_error and not content.startswith("Error:"):
            content = f"Error: {content}"
        outcome = ToolCallOutcome(call=call, content=content, is_error=result.is_error, duration_ms=duration_ms)

        await self.ctx.emit_event(
            ToolResultEvent(
                tool_id=call.id,
                name=call.name,
                result=content,
                is_error=result.is_error,
                depth=self.ctx.depth,
                parent_id=self.ctx.parent_id,
                duration_ms=duration_ms,
            )
        )
        return outcome

    async def _dispose(self, call: PendingToolCall) -> ToolResult:
        if self.gate is not None:
            check = self.gate.check_approval(self.ctx.session_id, call.name, call.args)
            if check.needs_approval and not await self._request_approval(check.request):
                return ToolResult.error(DENIED, "Denied")

        if call.name not in self.registry:
            return ToolResult.error(f"Unknown tool {call.name}", "Unknown tool")

        try:
            execution = ToolExecution(call.id, call.name, self.ctx)
            return await self.registry.execute(call.name, execution, call.args)
        except Exception as e:
            _logger.warning("Tool %s failed: %s: %s", call.name, type(e).__name__, e)
            return ToolResult.error(f"{type(e).__name__}: {e}", f"Failed: {type(e).__name__}")

    async def _request_approval(self, request: ApprovalRequest) -> bool:
        await self.ctx.emit_event(ApprovalRequiredEvent(request=request.model_dump(mode="json")))
        approved = await self.gate.wait_for_approval(request)
        await self.ctx.emit_event(ApprovalResultEvent(request_id=request.request_id, approved=approved))
        return approved
