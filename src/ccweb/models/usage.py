"""Rate-limit usage models scraped from the CLI's /usage screen."""

from __future__ import annotations

from ccweb.models.base import CamelModel


class UsageLimit(CamelModel):
    """One limit bucket as displayed by the CLI."""

    name: str
    percent_used: int
    reset_time: str
    reset_timezone: str | None = None


class ClaudeUsageData(CamelModel):
    current_session: UsageLimit | None = None
    current_week_all_models: UsageLimit | None = None
    current_week_sonnet_only: UsageLimit | None = None
    raw_output: str | None = None
    timestamp: str
