from pydantic import BaseModel

from crank.approval.models import Decision

# --- Chat / approval ---


class ChatRequest(BaseModel):
    message: str
    session_id: str | None = None


class ApprovalRequestBody(BaseModel):
    request_id: str
    decision: Decision
    pattern: str | None = None


# --- Session / config ---


class RevertRequest(BaseModel):
    checkpoint_id: str


class ForkRequest(BaseModel):
    checkpoint_id: str
    new_session_id: str | None = None


class UpdateConfigRequest(BaseModel):
    chat_model: str | None = None
    working_dir: str | None = None
