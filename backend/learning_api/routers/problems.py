"""
Problem Generation Router

Endpoints for generating multiple-choice problem sets and reading the
generation log:
- POST /api/generate-problems: one-shot generation (JSON)
- POST /api/generate-problems-stream: generation as server-sent events
- GET /api/problem-stats, /api/problem-stats/global: usage statistics
- GET /api/problem-logs, /api/problem-logs/{log_id}: the caller's logs

Generation accepts anonymous callers; log and stats reads require a token.
Domain errors are turned into JSON bodies by the handlers in main.py.
"""

from contextlib import aclosing
from typing import Optional
import json
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from learning_api.dependencies.auth import (
    get_current_user_id,
    get_optional_user_id,
    get_request_context,
)
from learning_api.dependencies.services import get_log_store, get_problem_generator
from learning_api.schemas.problems import (
    GenerationResponse,
    LogPageResponse,
    ProblemGenerationBody,
)
from learning_api.services.generation_log_service import GenerationLogStore
from learning_api.services.generation_types import RequestContext
from learning_api.services.problem_generator import ProblemGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["problems"])


def sse(event: dict) -> str:
    """Frame one event as a server-sent event."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


# =============================================================================
# Generation
# =============================================================================

@router.post("/generate-problems", response_model=GenerationResponse)
async def generate_problems(
    body: ProblemGenerationBody,
    user_id: Optional[str] = Depends(get_optional_user_id),
    context: RequestContext = Depends(get_request_context),
    generator: ProblemGenerator = Depends(get_problem_generator),
):
    """Generate a validated problem set in one call."""
    request = body.to_request()
    result = await generator.generate(request, caller_id=user_id, context=context)
    return {
        "success": True,
        "data": result.problem_set.to_dict(),
        "metadata": result.metadata(),
    }


@router.post("/generate-problems-stream")
async def generate_problems_stream(
    body: ProblemGenerationBody,
    user_id: Optional[str] = Depends(get_optional_user_id),
    context: RequestContext = Depends(get_request_context),
    generator: ProblemGenerator = Depends(get_problem_generator),
):
    """
    Generate a problem set as server-sent events.

    The first event is "connected"; the last is "complete" or "error".
    Invalid requests are rejected before the stream opens.
    """
    request = body.to_request()

    async def event_stream():
        yield sse({"type": "connected", "message": "Problem generation stream connected"})
        async with aclosing(generator.stream(request, caller_id=user_id, context=context)) as events:
            async for event in events:
                yield sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )


# =============================================================================
# Stats and logs
# =============================================================================

@router.get("/problem-stats")
def get_problem_stats(
    days: int = Query(30, ge=1, le=365),
    user_id: str = Depends(get_current_user_id),
    log_store: GenerationLogStore = Depends(get_log_store),
):
    """The caller's generation statistics over the last `days` days."""
    return {"success": True, **log_store.stats_for_user(user_id, days=days)}


@router.get("/problem-stats/global")
def get_global_problem_stats(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(100, ge=1, le=1000),
    user_id: str = Depends(get_current_user_id),
    log_store: GenerationLogStore = Depends(get_log_store),
):
    """Generation statistics across all users."""
    return {"success": True, **log_store.global_stats(days=days, limit=limit)}


@router.get("/problem-logs", response_model=LogPageResponse)
def list_problem_logs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    log_store: GenerationLogStore = Depends(get_log_store),
):
    """Newest-first page of the caller's generation logs (metadata only)."""
    return {"success": True, **log_store.list_for_user(user_id, limit=limit, offset=offset)}


@router.get("/problem-logs/{log_id}")
def get_problem_log(
    log_id: str,
    user_id: str = Depends(get_current_user_id),
    log_store: GenerationLogStore = Depends(get_log_store),
):
    """One of the caller's generation logs, including raw model output."""
    return {"success": True, "data": log_store.get_by_id(log_id, user_id=user_id)}
