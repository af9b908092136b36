"""Read-only access to the Claude CLI's per-project JSONL transcripts.

The CLI owns these files and may append to them while we read, so every line
is parsed on its own and malformed lines are skipped.
"""

from __future__ import annotations

import json
import math
import logging
from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ccweb.models.sessions import (
    ChatMessage,
    ResumeInfo,
    SessionMetadata,
    TokenTotals,
    ToolCall,
    ToolCallDetails,
)
from ccweb.timeutil import utc_now_iso

logger = logging.getLogger(__name__)

EXTERNAL_TITLE_LENGTH = 60
UNTITLED = "Untitled conversation"
_COMMAND_MARKER = "<command-name>"


@dataclass
class _PendingToolCall:
    tool_call: ToolCall
    input: dict[str, Any] | None


def iter_transcript_files(projects_dir: Path) -> Generator[tuple[str, Path]]:
    """Yield ``(project_dir_name, transcript_path)`` for every ``*.jsonl`` file."""
    if not projects_dir.is_dir():
        logger.info("Claude projects directory not found: %s", projects_dir)
        return
    for entry in sorted(projects_dir.iterdir()):
        if not entry.is_dir():
            continue
        for jsonl_path in sorted(entry.glob("*.jsonl")):
            yield entry.name, jsonl_path


def find_transcript(projects_dir: Path, session_id: str) -> Path | None:
    """Locate ``{session_id}.jsonl`` by scanning every project directory."""
    if not session_id or "/" in session_id or not projects_dir.is_dir():
        return None
    try:
        for entry in projects_dir.iterdir():
            if not entry.is_dir():
                continue
            candidate = entry / f"{session_id}.jsonl"
            if candidate.is_file():
                return candidate
    except OSError:
        logger.exception("Error searching for session file %s", session_id)
    return None


def decode_project_dir(project_dir: str) -> str:
    """Decode a project dir name '-Users-foo-src' -> '/Users/foo/src'."""
    return project_dir.replace("-", "/")


def iter_lines(path: Path) -> Generator[dict[str, Any]]:
    """Yield each well-formed JSON object in a transcript, skipping the rest."""
    with open(path, encoding="utf-8", errors="replace") as file:
        for line_num, line in enumerate(file, 1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping invalid JSON at %s:%d", path, line_num)
                continue
            if isinstance(raw, dict):
                yield raw


def summarize_transcript(path: Path, project_dir: str) -> SessionMetadata | None:
    """Derive dashboard metadata from a full transcript.

    The file stem is the session id even when lines carry a different
    ``sessionId``: the CLI resumes by file, not by internal id.
    """
    title = ""
    cwd = ""
    message_count = 0
    first_timestamp = ""
    last_timestamp = ""
    input_tokens = 0
    output_tokens = 0
    cache_read_tokens = 0
    cache_creation_tokens = 0
    seen_any = False

    try:
        for msg in iter_lines(path):
            seen_any = True
            msg_type = _as_str(msg.get("type"))
            if msg_type == "file-history-snapshot":
                continue

            if not cwd:
                cwd = _as_str(msg.get("cwd"))

            timestamp = _as_str(msg.get("timestamp"))
            if timestamp:
                if not first_timestamp:
                    first_timestamp = timestamp
                last_timestamp = timestamp

            if msg_type == "user":
                message_count += 1

            if not title:
                title = _title_from_line(msg, msg_type)

            if msg_type == "assistant":
                usage = _message(msg).get("usage")
                if isinstance(usage, dict):
                    input_tokens += _int(usage.get("input_tokens"))
                    output_tokens += _int(usage.get("output_tokens"))
                    cache_read_tokens += _int(usage.get("cache_read_input_tokens"))
                    cache_creation_tokens += _int(usage.get("cache_creation_input_tokens"))
    except OSError:
        logger.exception("Failed to parse session file %s", path)
        return None

    if not seen_any:
        return None

    now = utc_now_iso()
    return SessionMetadata(
        id=path.stem,
        title=title or UNTITLED,
        directory=cwd or decode_project_dir(project_dir),
        message_count=message_count,
        created_at=first_timestamp or now,
        last_activity=last_timestamp or now,
        total_tokens=TokenTotals(
            input=input_tokens + cache_read_tokens + cache_creation_tokens,
            output=output_tokens,
        ),
        total_cost_usd=0.0,
    )


def read_resume_info(path: Path) -> ResumeInfo | None:
    """Return the first (sessionId, cwd) pair recorded in a transcript."""
    try:
        for msg in iter_lines(path):
            session_id = _as_str(msg.get("sessionId"))
            cwd = _as_str(msg.get("cwd"))
            if session_id and cwd:
                return ResumeInfo(session_id=session_id, cwd=cwd)
    except OSError:
        logger.exception("Failed to get session details for %s", path)
    return None


def read_transcript_messages(path: Path, session_id: str) -> list[ChatMessage]:
    """Replay a transcript into chat messages with tool calls paired to results."""
    messages: list[ChatMessage] = []
    pending: dict[str, _PendingToolCall] = {}
    index = 0

    def _next_id() -> str:
        nonlocal index
        message_id = f"{session_id}-{index}"
        index += 1
        return message_id

    try:
        for msg in iter_lines(path):
            msg_type = _as_str(msg.get("type"))
            if msg_type not in ("user", "assistant"):
                continue
            content = _message(msg).get("content")
            if not content:
                continue
            timestamp = _as_str(msg.get("timestamp")) or utc_now_iso()

            if msg_type == "assistant":
                if isinstance(content, list):
                    text, tool_calls = _assistant_blocks(content, pending)
                    if text or tool_calls:
                        messages.append(
                            ChatMessage(
                                id=_next_id(),
                                type="assistant",
                                content=text,
                                timestamp=timestamp,
                                tool_calls=tool_calls or None,
                            )
                        )
                elif isinstance(content, str) and _COMMAND_MARKER not in content:
                    messages.append(
                        ChatMessage(
                            id=_next_id(), type="assistant", content=content, timestamp=timestamp
                        )
                    )
                continue

            if isinstance(content, list):
                if _resolve_tool_results(content, pending, msg.get("toolUseResult")):
                    continue
                text = "\n".join(
                    _as_str(block.get("text"))
                    for block in content
                    if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
                )
                if text and _COMMAND_MARKER not in text:
                    messages.append(
                        ChatMessage(id=_next_id(), type="user", content=text, timestamp=timestamp)
                    )
            elif isinstance(content, str) and _COMMAND_MARKER not in content:
                messages.append(
                    ChatMessage(id=_next_id(), type="user", content=content, timestamp=timestamp)
                )
    except OSError:
        logger.exception("Failed to get messages for session %s", session_id)

    return messages


def tool_display_name(tool_name: str, tool_input: dict[str, Any] | None) -> str:
    """Short human label for a tool call."""
    if not tool_input:
        return tool_name
    match tool_name.lower():
        case "read" | "write" | "edit":
            return _as_str(tool_input.get("file_path")) or "file"
        case "bash":
            cmd = _as_str(tool_input.get("command"))
            if not cmd:
                return "command"
            return cmd[:47] + "..." if len(cmd) > 50 else cmd
        case "glob":
            return _as_str(tool_input.get("pattern")) or "pattern"
        case "grep":
            return _as_str(tool_input.get("pattern")) or "search"
        case "task":
            return _as_str(tool_input.get("description")) or "task"
        case _:
            return tool_name


def format_tool_result(meta: object) -> str | None:
    """One-line summary of a ``toolUseResult`` record."""
    if not isinstance(meta, dict):
        return None
    file_info = meta.get("file")
    if isinstance(file_info, dict):
        return f"Read {_int(file_info.get('numLines'))} lines"
    filenames = meta.get("filenames")
    if isinstance(filenames, list):
        return f"Found {len(filenames)} files"
    if "exitCode" in meta and meta["exitCode"] is not None:
        exit_code = _int(meta["exitCode"])
        return "Success" if exit_code == 0 else f"Exit code: {exit_code}"
    if meta.get("durationMs"):
        return f"Completed in {_int(meta['durationMs'])}ms"
    return "Completed"


def build_tool_details(
    tool_type: str, tool_input: dict[str, Any] | None, meta: object
) -> ToolCallDetails | None:
    """Collect the per-tool fields the chat view renders."""
    tool_input = tool_input or {}
    result = meta if isinstance(meta, dict) else {}
    details: dict[str, Any] = {}

    match tool_type:
        case "read":
            details["file_path"] = _text(tool_input.get("file_path"))
            file_info = result.get("file")
            if isinstance(file_info, dict):
                details["num_lines"] = _int(file_info.get("numLines"))
        case "write":
            details["file_path"] = _text(tool_input.get("file_path"))
            content = tool_input.get("content")
            if isinstance(content, str) and content:
                details["num_lines"] = len(content.split("\n"))
        case "edit":
            details["file_path"] = _text(tool_input.get("file_path"))
            details["old_string"] = _text(tool_input.get("old_string"))
            details["new_string"] = _text(tool_input.get("new_string"))
        case "bash":
            details["command"] = _text(tool_input.get("command"))
            if result:
                details["stdout"] = _text(result.get("stdout"))
                details["stderr"] = _text(result.get("stderr"))
                if result.get("exitCode") is not None:
                    details["exit_code"] = _int(result.get("exitCode"))
        case "glob" | "grep":
            details["pattern"] = _text(tool_input.get("pattern"))
            filenames = result.get("filenames")
            if isinstance(filenames, list):
                details["match_count"] = len(filenames)
                details["matches"] = [str(f) for f in filenames]

    details = {k: v for k, v in details.items() if v is not None}
    if not details:
        return None
    return ToolCallDetails.model_validate(details)


def _assistant_blocks(
    content: list[Any], pending: dict[str, _PendingToolCall]
) -> tuple[str, list[ToolCall]]:
    text = ""
    tool_calls: list[ToolCall] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text" and block.get("text"):
            text += _as_str(block.get("text"))
        elif block_type == "tool_use" and block.get("id") and block.get("name"):
            name = _as_str(block.get("name"))
            tool_input = block.get("input") if isinstance(block.get("input"), dict) else None
            tool_call = ToolCall(
                id=_as_str(block.get("id")),
                type=name.lower(),
                name=tool_display_name(name, tool_input),
                input=tool_input,
            )
            tool_calls.append(tool_call)
            pending[tool_call.id] = _PendingToolCall(tool_call=tool_call, input=tool_input)
    return text, tool_calls


def _resolve_tool_results(
    content: list[Any], pending: dict[str, _PendingToolCall], meta: object
) -> bool:
    """Attach results to pending calls; report whether the line was a tool result."""
    is_tool_result = False
    for block in content:
        if not isinstance(block, dict):
            continue
        if block.get("type") != "tool_result" or not block.get("tool_use_id"):
            continue
        is_tool_result = True
        entry = pending.pop(_as_str(block.get("tool_use_id")), None)
        if entry is None:
            continue
        entry.tool_call.result = format_tool_result(meta)
        entry.tool_call.details = build_tool_details(entry.tool_call.type, entry.input, meta)
    return is_tool_result


def _title_from_line(msg: dict[str, Any], msg_type: str) -> str:
    if msg_type == "summary":
        return _as_str(msg.get("summary"))
    if msg_type != "user":
        return ""
    content = _message(msg).get("content")
    text = ""
    if isinstance(content, str):
        if _COMMAND_MARKER in content:
            return ""
        text = content
    elif isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                text = _as_str(block.get("text"))
                break
    if not text:
        return ""
    if len(text) > EXTERNAL_TITLE_LENGTH:
        return text[:EXTERNAL_TITLE_LENGTH] + "..."
    return text


def _message(raw: dict[str, Any]) -> dict[str, Any]:
    msg = raw.get("message")
    return msg if isinstance(msg, dict) else {}


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _text(value: object) -> str | None:
    """Coerce a loosely typed transcript field to text, keeping None."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value) if isinstance(value, (dict, list)) else str(value)


def _int(val: object) -> int:
    if isinstance(val, bool):
        return int(val)
    if isinstance(val, int):
        return val
    if isinstance(val, str):
        try:
            val = float(val)
        except ValueError:
            return 0
    if isinstance(val, float):
        return int(val) if math.isfinite(val) else 0
    return 0
