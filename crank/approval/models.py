from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from crank.utils import wall_ms


class Decision(StrEnum):
    ALLOW_ONCE = "allow_once"
    ALLOW_PATTERN = "allow_pattern"
    ALLOW_TOOL = "allow_tool"
    DENY = "deny"


class ApprovalRequest(BaseModel):
    """A gated tool invocation waiting for the user."""

    request_id: str
    session_id: str
    tool_name: str
    tool_input: dict[str, Any]
    summary: str
    is_dangerous: bool = False
    timestamp: int = Field(default_factory=wall_ms)
    suggested_pattern: str | None = None


class ApprovalResponse(BaseModel):
    request_id: str
    decision: Decision
    pattern: str | None = None  # for allow_pattern


@dataclass
class SessionApprovalState:
    trusted_tools: set[str] = field(default_factory=set)
    trusted_patterns: dict[str, set[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class ApprovalCheck:
    needs_approval: bool
    request: ApprovalRequest | None = None
