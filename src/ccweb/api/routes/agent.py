"""Agent routes: tasks, SSE streams, sessions, usage."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from ccweb.api.deps import Services
from ccweb.api.errors import ApiError, unwrap
from ccweb.errors import UsageTerminalError
from ccweb.models.agent import AgentTaskRequest, AgentTaskResponse
from ccweb.models.events import to_sse_frame
from ccweb.models.sessions import (
    ResumeInfo,
    SessionMetadata,
    SessionPage,
    StatsCache,
    UsageTotals,
)
from ccweb.models.usage import ClaudeUsageData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent", tags=["agent"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
NO_API_KEY = "ANTHROPIC_API_KEY is not configured on the server."


def _require_agent(services: Services) -> None:
    if not services.config.agent_available:
        raise ApiError.unavailable(NO_API_KEY)


@router.get("/sessions")
def list_sessions(
    services: Services,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 10,
    include_warmup: Annotated[bool, Query(alias="includeWarmup")] = False,
    min_messages: Annotated[int, Query(alias="minMessages", ge=0)] = 2,
) -> SessionPage:
    return unwrap(
        services.session_service.list_sessions(
            page=page, limit=limit, include_warmup=include_warmup, min_messages=min_messages
        )
    )


@router.get("/usage")
def total_usage(services: Services) -> UsageTotals:
    return unwrap(services.session_service.get_total_usage())


@router.post("/task")
async def execute_task(request: AgentTaskRequest, services: Services) -> AgentTaskResponse:
    if not request.task:
        raise ApiError(400, "Task is required")
    _require_agent(services)
    try:
        return await services.agent_runner.execute_task(
            request.task,
            request.session_id,
            request.working_directory or services.config.default_working_dir,
        )
    except Exception as e:
        logger.exception("Error executing agent task")
        raise ApiError(500, "Failed to execute task", str(e)) from e


@router.get("/stream")
async def stream_task(
    services: Services,
    task: str = "",
    session_id: Annotated[str | None, Query(alias="sessionId")] = None,
    cwd: str | None = None,
) -> StreamingResponse:
    if not task:
        raise ApiError(400, "Task query parameter is required")
    _require_agent(services)

    events = services.agent_runner.stream_task(
        task, session_id or None, cwd or services.config.default_working_dir
    )

    async def frames() -> AsyncIterator[str]:
        async for event in events:
            yield to_sse_frame(event)

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/session/{session_id}")
def get_session(session_id: str, services: Services) -> SessionMetadata:
    return unwrap(services.session_service.get_session(session_id))


@router.delete("/session/{session_id}")
def clear_session(session_id: str, services: Services) -> dict[str, object]:
    unwrap(services.session_service.delete_session(session_id))
    return {"success": True, "message": "Session cleared"}


@router.get("/session/{session_id}/messages")
def get_session_messages(session_id: str, services: Services) -> dict[str, object]:
    messages = unwrap(services.session_service.get_messages(session_id))
    return {"messages": [m.to_wire() for m in messages]}


@router.get("/session/{session_id}/resume")
def get_resume_info(session_id: str, services: Services) -> ResumeInfo:
    return unwrap(services.session_service.get_resume_info(session_id))


@router.get("/stats")
def get_stats(services: Services) -> StatsCache:
    return unwrap(services.session_service.get_stats())


@router.get("/rate-limits")
async def get_rate_limits(services: Services) -> ClaudeUsageData:
    if services.rate_limit_service is None:
        raise ApiError.unavailable("The usage terminal is disabled.")
    try:
        return await services.rate_limit_service.get_cached_usage()
    except UsageTerminalError as e:
        logger.warning("Error getting rate limits: %s", e)
        raise ApiError(500, "Failed to get rate limits", str(e)) from e
