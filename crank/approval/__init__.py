from crank.approval.gate import ApprovalGate
from crank.approval.models import ApprovalCheck, ApprovalRequest, ApprovalResponse, Decision, SessionApprovalState

__all__ = [
    "ApprovalCheck",
    "ApprovalGate",
    "ApprovalRequest",
    "ApprovalResponse",
    "Decision",
    "SessionApprovalState",
]
