from pathlib import Path
from uuid import uuid4

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from crank.config import load_user_settings, save_user_settings
from crank.errors import SessionBusyError
from crank.llm.models import list_models
from crank.logging import get_logger
from crank.server.runtime import get_runtime
from crank.server.schemas import ForkRequest, RevertRequest, UpdateConfigRequest

_logger = get_logger(__name__)

router = APIRouter(tags=["session"])


@router.post("/session")
async def create_session():
    runtime = get_runtime()
    state = runtime.orchestrator.get_or_create_state(str(uuid4()))
    return {"session_id": state.session_id}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    runtime = get_runtime()
    state = runtime.sessions.get(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")

    usage = runtime.context.get_usage(session_id)
    return {
        "session_id": state.session_id,
        "messages": state.messages,
        "todos": [t.to_dict() for t in state.todos],
        "files": state.files,
        "context_usage": {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "total_tokens": usage.total_tokens,
            "percentage": usage.percentage,
            "warning": usage.warning,
            "at_soft_limit": usage.at_soft_limit,
        },
        "busy": runtime.sessions.is_busy(session_id),
    }


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    runtime = get_runtime()
    try:
        existed = runtime.orchestrator.discard_session(session_id)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not existed:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"status": "deleted", "session_id": session_id}


@router.get("/sessions/{session_id}/checkpoints")
async def list_checkpoints(session_id: str):
    runtime = get_runtime()
    checkpoints = runtime.orchestrator.list_checkpoints(session_id)
    return {"checkpoints": [c.to_dict() for c in checkpoints]}


@router.post("/sessions/{session_id}/revert")
async def revert_session(session_id: str, req: RevertRequest):
    runtime = get_runtime()
    try:
        ok = runtime.orchestrator.revert_to_checkpoint(session_id, req.checkpoint_id)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not ok:
        raise HTTPException(status_code=404, detail=f"Checkpoint {req.checkpoint_id} not found")

    state = runtime.sessions.get(session_id)
    return {
        "status": "reverted",
        "session_id": session_id,
        "checkpoint_id": req.checkpoint_id,
        "message_count": len(state.messages) if state else 0,
    }


@router.post("/sessions/{session_id}/fork")
async def fork_session(session_id: str, req: ForkRequest):
    runtime = get_runtime()
    new_session_id = req.new_session_id or str(uuid4())
    if new_session_id in runtime.sessions:
        raise HTTPException(status_code=409, detail=f"Session {new_session_id} already exists")

    try:
        ok = runtime.orchestrator.fork_from_checkpoint(session_id, req.checkpoint_id, new_session_id)
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not ok:
        raise HTTPException(status_code=404, detail=f"Checkpoint {req.checkpoint_id} not found")
    return {"status": "forked", "session_id": new_session_id, "parent_session_id": session_id}


@router.get("/config")
async def get_config_endpoint():
    runtime = get_runtime()
    config = runtime.config
    return {
        "chat_model": config.chat_model,
        "naming_model": config.naming_model,
        "working_dir": str(config.working_dir),
        "max_iterations": config.max_iterations,
        "approval_timeout": config.approval_timeout,
        "available_models": list_models(),
        "has_anthropic_key": bool(config.anthropic_api_key),
        "has_openai_key": bool(config.openai_api_key),
    }


@router.patch("/config")
async def update_config(req: UpdateConfigRequest):
    runtime = get_runtime()

    try:
        return await _apply_config(runtime, req)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _apply_config(runtime, req: UpdateConfigRequest):
    async with runtime._config_lock:
        settings = load_user_settings()

        if req.chat_model:
            runtime.set_chat_model(req.chat_model)
            settings["chat_model"] = req.chat_model

        if req.working_dir:
            working_dir = Path(req.working_dir).expanduser()
            if not working_dir.is_dir():
                raise HTTPException(status_code=400, detail=f"Working directory does not exist: {working_dir}")
            runtime.config.working_dir = working_dir
            settings["working_dir"] = str(working_dir)

        if req.chat_model or req.working_dir:
            save_user_settings(settings)
            _logger.info("Config updated", chat_model=runtime.config.chat_model)

    return {
        "chat_model": runtime.config.chat_model,
        "working_dir": str(runtime.config.working_dir),
    }
