"""Protocol definitions for services."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from result import Result

from ccweb.errors import ServiceError
from ccweb.models.agent import AgentTaskResponse
from ccweb.models.events import StreamEvent
from ccweb.models.sessions import ChatMessage, SessionMetadata, SessionPage


class AgentRunnerProtocol(Protocol):
    """Interface shared by the SDK runner and the Messages-API tool loop."""

    async def execute_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AgentTaskResponse: ...

    def stream_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AsyncIterator[StreamEvent]: ...


class UsageSourceProtocol(Protocol):
    """Anything that can produce raw ``/usage`` screen output."""

    @property
    def ready(self) -> bool: ...

    async def get_usage(self) -> str: ...


class SessionServiceProtocol(Protocol):
    """Interface for session queries."""

    def list_sessions(
        self,
        page: int = 1,
        limit: int = 10,
        include_warmup: bool = False,
        min_messages: int = 2,
    ) -> Result[SessionPage, ServiceError]: ...

    def get_session(self, session_id: str) -> Result[SessionMetadata, ServiceError]: ...

    def get_messages(self, session_id: str) -> Result[list[ChatMessage], ServiceError]: ...
