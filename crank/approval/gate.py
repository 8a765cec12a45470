import asyncio
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from crank.approval.models import (
    ApprovalCheck,
    ApprovalRequest,
    ApprovalResponse,
    Decision,
    SessionApprovalState,
)
from crank.approval.patterns import find_danger, match_string, matches_glob, summarize, suggest_pattern
from crank.constants import APPROVAL_REQUIRED_TOOLS, APPROVAL_TIMEOUT
from crank.logging import get_logger

_logger = get_logger(__name__)


@dataclass
class _Pending:
    request: ApprovalRequest
    future: asyncio.Future[bool] | None = None


class ApprovalGate:
    """Decides whether a tool invocation may run and holds per-session trust.

    Every request resolves exactly once: by `handle_response`, or as a denial
    when `timeout` seconds pass without one.
    """

    def __init__(
        self,
        timeout: float = APPROVAL_TIMEOUT,
        approval_required: frozenset[str] = APPROVAL_REQUIRED_TOOLS,
    ):
        self.timeout = timeout
        self.approval_required = approval_required
        self._sessions: dict[str, SessionApprovalState] = {}
        self._pending: dict[str, _Pending] = {}
        # Decisions that arrived before anyone started waiting
        self._answered: dict[str, bool] = {}

    def get_state(self, session_id: str) -> SessionApprovalState:
        return self._sessions.setdefault(session_id, SessionApprovalState())

    def check_approval(self, session_id: str, tool_name: str, tool_input: dict[str, Any]) -> ApprovalCheck:
        if tool_name not in self.approval_required:
            return ApprovalCheck(needs_approval=False)

        danger = find_danger(tool_name, tool_input)
        if danger is None and self._is_trusted(session_id, tool_name, tool_input):
            return ApprovalCheck(needs_approval=False)

        request = ApprovalRequest(
            request_id=str(uuid4()),
            session_id=session_id,
            tool_name=tool_name,
            tool_input=tool_input,
            summary=summarize(tool_name, tool_input),
            is_dangerous=danger is not None,
            suggested_pattern=suggest_pattern(tool_name, tool_input),
        )
        self._pending[request.request_id] = _Pending(request)
        if danger:
            _logger.info("Dangerous invocation of %s (%s): %s", tool_name, danger, request.summary)
        return ApprovalCheck(needs_approval=True, request=request)

    def _is_trusted(self, session_id: str, tool_name: str, tool_input: dict[str, Any]) -> bool:
        state = self._sessions.get(session_id)
        if state is None:
            return False
        if tool_name in state.trusted_tools:
            return True
        value = match_string(tool_name, tool_input)
        return any(matches_glob(p, value) for p in state.trusted_patterns.get(tool_name, ()))

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    def pending_requests(self, session_id: str | None = None) -> list[ApprovalRequest]:
        return [
            p.request for p in self._pending.values() if session_id is None or p.request.session_id == session_id
        ]

    async def wait_for_approval(self, request: ApprovalRequest) -> bool:
        request_id = request.request_id
        if request_id in self._answered:
            return self._answered.pop(request_id)

        pending = self._pending.setdefault(request_id, _Pending(request))
        if pending.future is None:
            pending.future = asyncio.get_running_loop().create_future()

        try:
            return await asyncio.wait_for(pending.future, timeout=self.timeout)
        except TimeoutError:
            _logger.warning("Approval request %s timed out after %ss", request_id, self.timeout)
            return False
        finally:
            self._pending.pop(request_id, None)

    def handle_response(self, response: ApprovalResponse) -> bool:
        pending = self._pending.pop(response.request_id, None)
        if pending is None:
            return False
        if pending.future is not None and pending.future.done():
            return False

        approved = self._apply(pending.request, response)
        if pending.future is None:
            self._answered[response.request_id] = approved
        else:
            pending.future.set_result(approved)
        _logger.info("Approval %s: %s", response.request_id, response.decision.value)
        return True

    def _apply(self, request: ApprovalRequest, response: ApprovalResponse) -> bool:
        state = self.get_state(request.session_id)
        match response.decision:
            case Decision.DENY:
                return False
            case Decision.ALLOW_ONCE:
                return True
            case Decision.ALLOW_PATTERN:
                if response.pattern:
                    state.trusted_patterns.setdefault(request.tool_name, set()).add(response.pattern)
                    _logger.info("Trusted pattern %r for %s", response.pattern, request.tool_name)
                return True
            case Decision.ALLOW_TOOL:
                # A dangerous trigger only ever allows this one invocation
                if not request.is_dangerous:
                    state.trusted_tools.add(request.tool_name)
                    _logger.info("Trusted tool %s for session %s", request.tool_name, request.session_id)
                return True

    def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        for request_id, pending in list(self._pending.items()):
            if pending.request.session_id != session_id:
                continue
            del self._pending[request_id]
            if pending.future is not None and not pending.future.done():
                pending.future.set_result(False)
