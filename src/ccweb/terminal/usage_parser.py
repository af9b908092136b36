"""Parser for the Claude CLI's ``/usage`` screen."""

from __future__ import annotations

import re

from ccweb.models.usage import ClaudeUsageData, UsageLimit
from ccweb.timeutil import utc_now_iso

# OSC first: "]" also falls inside the single-character escape range.
ANSI_RE = re.compile(r"\x1B(?:\][^\x1B\x07]*(?:\x07|\x1B\\)|\[[0-?]*[ -/]*[@-~]|[@-Z\\-_])")
_PERCENT_RE = re.compile(r"(\d+)%\s*used", re.IGNORECASE)
_RESET_TZ_RE = re.compile(r"Resets?\s+(.+?)\s*\(([^)]+)\)", re.IGNORECASE)
_RESET_RE = re.compile(r"Resets?\s+(.+)", re.IGNORECASE)

SECTION_NAMES = {
    "session": "Current Session",
    "week_all": "Weekly (All Models)",
    "week_sonnet": "Weekly (Sonnet Only)",
}


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def parse_percentage(line: str) -> int:
    match = _PERCENT_RE.search(line)
    return int(match.group(1)) if match else 0


def parse_reset_time(line: str) -> tuple[str, str | None]:
    """Split "Resets 7:59am (America/New_York)" into time and timezone."""
    match = _RESET_TZ_RE.search(line)
    if match:
        return match.group(1).strip(), match.group(2)
    match = _RESET_RE.search(line)
    if match:
        return match.group(1).strip(), None
    return "", None


def _section_of(line: str) -> str | None:
    if "Current session" in line:
        return "session"
    if "Current week" in line and "all models" in line:
        return "week_all"
    if "Current week" in line and "Sonnet" in line:
        return "week_sonnet"
    return None


def parse_usage_output(output: str, *, include_raw: bool = False) -> ClaudeUsageData:
    """Turn raw terminal output into per-bucket usage limits.

    A ``% used`` line belongs to the most recent section header, and the
    reset time is read from the line right after it.
    """
    lines = strip_ansi(output).split("\n")
    limits: dict[str, UsageLimit] = {}
    section = ""

    for i, raw_line in enumerate(lines):
        line = raw_line.strip()
        section = _section_of(line) or section
        if "% used" not in line or section not in SECTION_NAMES:
            continue
        next_line = lines[i + 1].strip() if i + 1 < len(lines) else ""
        reset_time, reset_timezone = parse_reset_time(next_line)
        limits[section] = UsageLimit(
            name=SECTION_NAMES[section],
            percent_used=parse_percentage(line),
            reset_time=reset_time,
            reset_timezone=reset_timezone,
        )

    return ClaudeUsageData(
        current_session=limits.get("session"),
        current_week_all_models=limits.get("week_all"),
        current_week_sonnet_only=limits.get("week_sonnet"),
        raw_output=output if include_raw else None,
        timestamp=utc_now_iso(),
    )
