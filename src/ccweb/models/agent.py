"""Agent task request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from ccweb.models.base import CamelModel


class AgentTaskRequest(CamelModel):
    task: str = ""
    session_id: str | None = None
    working_directory: str | None = None


class AgentToolCall(CamelModel):
    """A tool call made while running one task."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None


class AgentTaskResponse(CamelModel):
    session_id: str
    response: str
    tool_calls: list[AgentToolCall] = Field(default_factory=list)
    stop_reason: str = "end_turn"
