import secrets
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config.settings import settings
from core import configure_logging, get_logger, RecordNotFoundError, ContextAssemblyError, UserNotFoundError
from memory.database_async import db
from memory.memory_manager_async import memory_manager
from agents import (
    orchestrator,
    extraction_agent,
    summary_agent,
    snapshot_agent,
    proactive_agent,
)
from schemas import (
    ChatRequestSchema,
    JobStats,
    OnboardingRequest,
    ProactiveMessageSchema,
    ProactiveReadRequest,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup and release the connection pool on shutdown."""
    configure_logging()
    logger.info("Starting API", environment=settings.ENVIRONMENT)
    yield
    logger.info("Shutting down...")
    await db.dispose()


app = FastAPI(title="Companion Memory API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Conversation-Id"],
)


# ── Identity & auth ─────────────────────────────────────────────────

async def current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """Caller id as set by the upstream auth layer."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    expected = settings.CRON_SECRET
    if not expected or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


# ── Chat ────────────────────────────────────────────────────────────

@app.post("/api/chat")
async def chat(req: ChatRequestSchema, user_id: int = Depends(current_user_id)):
    """Stream the companion's reply as plain text."""
    try:
        turn = await orchestrator.start_turn(user_id, req.message, conversation_id=req.conversation_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ContextAssemblyError as e:
        logger.error("Chat turn failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load memory")

    return StreamingResponse(
        turn.chunks(),
        media_type="text/plain; charset=utf-8",
        headers={"X-Conversation-Id": str(turn.conversation_id)},
    )


# ── Onboarding ──────────────────────────────────────────────────────

@app.post("/api/user/onboarding")
async def complete_onboarding(req: OnboardingRequest, user_id: int = Depends(current_user_id)):
    """Save onboarding answers into the profile and mark onboarding complete."""
    try:
        await memory_manager.complete_onboarding(user_id, req)
    except UserNotFoundError as e:
        return JSONResponse(status_code=404, content=e.to_dict())
    return {"success": True}


# ── Proactive messages ──────────────────────────────────────────────

@app.get("/api/user/proactive-messages", response_model=list[ProactiveMessageSchema])
async def get_proactive_messages(user_id: int = Depends(current_user_id)):
    """Pending outreach for the caller. Fetching marks them delivered."""
    return await orchestrator.get_pending_proactive_messages(user_id)


@app.patch("/api/user/proactive-messages", response_model=ProactiveMessageSchema)
async def mark_proactive_message_read(req: ProactiveReadRequest, user_id: int = Depends(current_user_id)):
    try:
        return await orchestrator.mark_proactive_message_read(req.id, user_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")


# ── Cron jobs ───────────────────────────────────────────────────────

async def run_cron_job(name: str, job: Callable[[], Awaitable[JobStats]]) -> JSONResponse:
    """Run one batch and report its stats; a batch-level failure is a 500."""
    try:
        stats = await job()
    except Exception as e:
        logger.error("Cron job failed", job=name, error=str(e))
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return JSONResponse(content={"success": True, **stats.model_dump()})


@app.get("/api/cron/process-insights", dependencies=[Depends(verify_cron_secret)])
async def cron_process_insights():
    return await run_cron_job("process-insights", extraction_agent.run_extraction_batch)


@app.get("/api/cron/summarize", dependencies=[Depends(verify_cron_secret)])
async def cron_summarize():
    return await run_cron_job("summarize", summary_agent.run_summarization_batch)


@app.get("/api/cron/memory-snapshot", dependencies=[Depends(verify_cron_secret)])
async def cron_memory_snapshot():
    return await run_cron_job("memory-snapshot", snapshot_agent.run_snapshot_batch)


@app.get("/api/cron/proactive", dependencies=[Depends(verify_cron_secret)])
async def cron_proactive():
    return await run_cron_job("proactive", proactive_agent.run_proactive_batch)
