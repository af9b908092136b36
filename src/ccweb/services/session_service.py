"""Session service: dashboard queries over the session store."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from result import Err, Ok, Result

from ccweb.errors import ServiceError
from ccweb.models.sessions import (
    ChatMessage,
    Pagination,
    ResumeInfo,
    SessionMetadata,
    SessionPage,
    StatsCache,
    UsageTotals,
)

if TYPE_CHECKING:
    from ccweb.services.session_store import SessionStore

WARMUP_MARKER = "warmup"


class SessionService:
    """Service for session queries."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    def list_sessions(
        self,
        page: int = 1,
        limit: int = 10,
        include_warmup: bool = False,
        min_messages: int = 2,
    ) -> Result[SessionPage, ServiceError]:
        """List merged sessions, newest first, one page at a time.

        Unless ``include_warmup`` is set, sessions whose title mentions a
        warm-up and sessions with fewer than ``min_messages`` user messages are
        dropped before paginating.
        """
        if page < 1 or limit < 1:
            return Err(ServiceError.validation("page and limit must be positive"))

        sessions = self._store.list_sessions()
        if not include_warmup:
            sessions = [
                s
                for s in sessions
                if WARMUP_MARKER not in s.title.lower() and s.message_count >= min_messages
            ]

        total = len(sessions)
        total_pages = math.ceil(total / limit)
        offset = (page - 1) * limit
        return Ok(
            SessionPage(
                sessions=sessions[offset : offset + limit],
                pagination=Pagination(
                    page=page,
                    limit=limit,
                    total=total,
                    total_pages=total_pages,
                    has_next=page < total_pages,
                    has_prev=page > 1,
                ),
            )
        )

    def get_session(self, session_id: str) -> Result[SessionMetadata, ServiceError]:
        """Local record first, then the CLI transcript."""
        session = self._store.get(session_id) or self._store.get_external_session(session_id)
        if session is None:
            return Err(ServiceError.not_found(f"Session not found: {session_id}"))
        return Ok(session)

    def delete_session(self, session_id: str) -> Result[None, ServiceError]:
        if not self._store.delete(session_id):
            return Err(ServiceError.not_found(f"Session not found: {session_id}"))
        return Ok(None)

    def get_messages(self, session_id: str) -> Result[list[ChatMessage], ServiceError]:
        messages = self._store.get_session_messages(session_id)
        if messages is None:
            return Err(ServiceError.not_found(f"Session not found: {session_id}"))
        return Ok(messages)

    def get_resume_info(self, session_id: str) -> Result[ResumeInfo, ServiceError]:
        info = self._store.get_resume_info(session_id)
        if info is None:
            return Err(ServiceError.not_found(f"No resumable transcript for {session_id}"))
        return Ok(info)

    def get_total_usage(self) -> Result[UsageTotals, ServiceError]:
        return Ok(self._store.get_total_usage())

    def get_stats(self) -> Result[StatsCache, ServiceError]:
        stats = self._store.get_stats_cache()
        if stats is None:
            return Err(ServiceError.not_found("Claude Code stats not found"))
        return Ok(stats)
