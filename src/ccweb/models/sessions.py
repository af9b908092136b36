"""Session-level models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field

from ccweb.models.base import CamelModel


class TokenTotals(CamelModel):
    """Cumulative token counts for a session."""

    input: int = 0
    output: int = 0


class UsageDelta(CamelModel):
    """Usage reported by one completed agent turn."""

    input: int = 0
    output: int = 0
    cost_usd: float = 0.0


class UsageTotals(CamelModel):
    """Aggregate usage across sessions."""

    input: int = 0
    output: int = 0
    cost_usd: float = 0.0


class SessionMetadata(CamelModel):
    """Summary of a session for dashboard lists."""

    id: str
    title: str
    directory: str = ""
    message_count: int = 0
    created_at: str = ""
    last_activity: str = ""
    total_tokens: TokenTotals = Field(default_factory=TokenTotals)
    total_cost_usd: float = 0.0


class ToolCallDetails(CamelModel):
    """Rich per-tool data reconstructed from a transcript."""

    file_path: str | None = None
    num_lines: int | None = None
    old_string: str | None = None
    new_string: str | None = None
    command: str | None = None
    stdout: str | None = None
    stderr: str | None = None
    exit_code: int | None = None
    pattern: str | None = None
    match_count: int | None = None
    matches: list[str] | None = None


class ToolCall(CamelModel):
    """A tool call shown alongside an assistant message."""

    id: str
    type: str
    name: str
    input: dict[str, Any] | None = None
    result: str | None = None
    details: ToolCallDetails | None = None


class ChatMessage(CamelModel):
    """A message for display in the chat view."""

    id: str
    type: Literal["user", "assistant"]
    content: str
    timestamp: str
    tool_calls: list[ToolCall] | None = None


class ResumeInfo(CamelModel):
    """Internal session id and cwd needed to resume a transcript."""

    session_id: str
    cwd: str


class ModelUsage(CamelModel):
    """Per-model counters from the external stats cache."""

    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cost_usd: float = Field(default=0.0, alias="costUSD")


class DailyActivity(CamelModel):
    model_config = ConfigDict(extra="allow")

    date: str
    message_count: int = 0
    session_count: int = 0
    tool_call_count: int = 0


class StatsCache(CamelModel):
    """The external CLI's aggregate stats-cache.json."""

    model_config = ConfigDict(extra="allow")

    version: int = 0
    last_computed_date: str = ""
    daily_activity: list[DailyActivity] = Field(default_factory=list)
    model_usage: dict[str, ModelUsage] = Field(default_factory=dict)
    total_sessions: int = 0
    total_messages: int = 0
    first_session_date: str | None = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SessionPage(CamelModel):
    """One page of the dashboard session listing."""

    sessions: list[SessionMetadata] = Field(default_factory=list)
    pagination: Pagination
