"""FastAPI route definitions for the care-agent API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Header, HTTPException, Request

from src.agent import CarePipeline
from src.api.auth import authenticate, require_service_key
from src.api.schemas import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HandoffInfo,
    HandoffRequest,
    HandoffResponse,
    HealthResponse,
)
from src.errors import PipelineError
from src.pipeline.personas import get_persona

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 402, 404, 429, 500, 503)
}


def _get_pipeline(request: Request) -> CarePipeline:
    """Retrieve the compiled pipeline from app state (set in the lifespan)."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=503,
            detail="The agent service is still starting up. Please try again in a moment.",
        )
    return pipeline


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/agents/{agent_name}/chat", response_model=ChatResponse, responses=_ERRORS)
async def chat(
    agent_name: str,
    request: ChatRequest,
    http_request: Request,
    authorization: str | None = Header(default=None),
):
    """Send the conversation to *agent_name* and get its reply.

    The body has already been validated by the time this runs, so an empty
    ``messages`` array never reaches the database or the model gateway.

    **Implementation note**: authentication and the pipeline both make
    blocking HTTP calls, so they run in the default thread-pool via
    ``asyncio.to_thread`` to keep the event loop responsive.
    """
    pipeline = _get_pipeline(http_request)
    persona = get_persona(agent_name)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        caller = await asyncio.to_thread(
            authenticate, authorization, persona, pipeline.supabase,
        )
        result = await asyncio.to_thread(
            pipeline.run,
            persona,
            [m.model_dump() for m in request.messages],
            context=request.conversation(),
            language=request.language,
            user_id=caller.user_id,
            session_id=request.session_id,
        )
    except PipelineError as exc:
        logger.warning("[%s] %s chat failed: %s", request_id, agent_name, exc.message)
        raise
    except Exception as e:
        # Full traceback server-side only
        logger.exception("[%s] Error processing chat request for %s", request_id, agent_name)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    handoff = None
    if result.handoff is not None:
        handoff = HandoffInfo(agent=result.handoff.agent, message=result.handoff.message)
    return ChatResponse(message=result.message, agent=result.agent, handoff=handoff)


@router.post("/agent-handoff", response_model=HandoffResponse, responses=_ERRORS)
async def agent_handoff(
    request: HandoffRequest,
    http_request: Request,
    authorization: str | None = Header(default=None),
):
    """Answer a consultation on behalf of another agent (internal callers only)."""
    require_service_key(authorization)
    pipeline = _get_pipeline(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.info("[%s] Agent handoff to %s…", request_id, request.target_agent)

    try:
        result = await asyncio.to_thread(
            pipeline.answer_consultation,
            request.target_agent,
            request.message,
            request.context,
            request.language,
        )
    except PipelineError as exc:
        logger.warning("[%s] Handoff to %s failed: %s", request_id, request.target_agent, exc.message)
        raise
    except Exception as e:
        logger.exception("[%s] Error processing handoff to %s", request_id, request.target_agent)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return HandoffResponse(
        message=result.message, agent=result.agent, agent_name=request.target_agent,
    )
