import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from crank import __version__
from crank.approval.models import ApprovalResponse
from crank.errors import SessionBusyError
from crank.events.sse import DoneEvent, ErrorEvent, SSEEvent
from crank.logging import configure_logging, get_logger
from crank.server.routers.sessions import router as sessions_router
from crank.server.runtime import Runtime, get_runtime, get_runtime_async, reset_runtime
from crank.server.schemas import ApprovalRequestBody, ChatRequest

_logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    configure_logging()
    await get_runtime_async()
    yield
    await reset_runtime()


app = FastAPI(
    title="crank",
    description="Agentic task runner - API server",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/tools")
async def list_tools():
    runtime = get_runtime()
    tools = [tool.get_metadata() for tool in runtime.middleware.registry.tools.values()]
    return {"tools": tools}


@app.post("/approval")
async def submit_approval(req: ApprovalRequestBody):
    runtime = get_runtime()
    response = ApprovalResponse(request_id=req.request_id, decision=req.decision, pattern=req.pattern)
    if not runtime.gate.handle_response(response):
        raise HTTPException(status_code=404, detail=f"No pending approval request {req.request_id}")
    return {"status": "ok", "request_id": req.request_id}


async def _run_turn(
    runtime: Runtime,
    session_id: str,
    message: str,
    queue: asyncio.Queue[SSEEvent | None],
) -> None:
    try:
        result = await runtime.orchestrator.process_message(session_id, message, runtime.turn_config(queue.put))
        # Give the checkpoint namer a chance to report before the stream closes
        await runtime.channel.drain(timeout=runtime.config.naming_grace_seconds)
        await queue.put(
            DoneEvent(
                session_id=session_id,
                checkpoint_id=result.checkpoint_id,
                iterations=result.iterations,
                stopped_at_limit=result.stopped_at_limit,
            )
        )
    except SessionBusyError as e:
        await queue.put(ErrorEvent(message=str(e), recoverable=True))
    except Exception as e:
        _logger.exception("Turn failed for session %s", session_id)
        await queue.put(ErrorEvent(message=f"{type(e).__name__}: {e}"))
    finally:
        await queue.put(None)


@app.post("/chat")
async def chat(request: ChatRequest) -> StreamingResponse:
    runtime = get_runtime()
    session_id = request.session_id or str(uuid4())
    if runtime.sessions.is_busy(session_id):
        raise HTTPException(status_code=409, detail=str(SessionBusyError(session_id)))

    queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue()
    # The turn keeps running if the client goes away; pending approvals then time out
    runtime.start_task(_run_turn(runtime, session_id, request.message, queue))

    async def event_generator() -> AsyncGenerator[str]:
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event.to_sse_string()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
