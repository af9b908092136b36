"""Agent runner that drives the Messages API with first-party tools.

Selected with ``agent_backend = "messages"``. Unlike the SDK runner, this one
keeps its own short-lived conversation history in memory.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from anthropic import AsyncAnthropic

from ccweb.models import events
from ccweb.models.agent import AgentTaskResponse, AgentToolCall
from ccweb.models.events import StreamEvent
from ccweb.models.sessions import UsageDelta, UsageTotals
from ccweb.tools import bash, text_editor

if TYPE_CHECKING:
    from ccweb.services.session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_TOKENS = 8192
SESSION_MAX_AGE = 60 * 60.0
CLEANUP_INTERVAL = 5 * 60.0
TOOLS = [text_editor.TOOL_DEFINITION, bash.TOOL_DEFINITION]

SYSTEM_PROMPT = """You are Claude, an AI assistant helping with software development tasks.

You have access to tools for reading, creating, and editing files, as well as running shell \
commands.

Current working directory: {working_directory}

Guidelines:
- Use the view command to read files before editing them
- Use str_replace for editing existing files (old_str must be unique)
- Use bash for running commands, tests, and git operations
- Be concise in your responses
- Explain what you're doing before using tools
- After completing a task, summarize what was done"""


@dataclass
class ConversationSession:
    """In-memory text history for one tool-loop conversation."""

    id: str
    working_directory: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)


async def execute_tool(name: str, tool_input: dict[str, Any], working_directory: str) -> str:
    """Run one tool; failures become strings so the loop keeps going."""
    try:
        match name:
            case text_editor.TOOL_NAME:
                return await asyncio.to_thread(text_editor.handle_text_editor, tool_input)
            case bash.TOOL_NAME:
                return await bash.handle_bash(tool_input, working_directory)
            case _:
                return f"Unknown tool: {name}"
    except Exception as e:
        logger.warning("Tool %s failed: %s", name, e)
        return f"Error executing {name}: {e}"


class ToolLoopRunner:
    """Runs tasks with ``AsyncAnthropic`` and executes tool calls locally."""

    def __init__(
        self,
        store: SessionStore,
        client: AsyncAnthropic,
        *,
        model: str,
        max_age: float = SESSION_MAX_AGE,
        cleanup_interval: float = CLEANUP_INTERVAL,
    ) -> None:
        self._store = store
        self._client = client
        self._model = model
        self._max_age = max_age
        self._cleanup_interval = cleanup_interval
        self._sessions: dict[str, ConversationSession] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self._client.close()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            self.cleanup()

    def cleanup(self, now: float | None = None) -> int:
        """Drop conversations idle for longer than ``max_age``; return how many."""
        now = time.monotonic() if now is None else now
        stale = [
            sid for sid, s in self._sessions.items() if now - s.last_activity > self._max_age
        ]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Cleaned up %d idle conversations", len(stale))
        return len(stale)

    def get_conversation(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    def clear_conversation(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def _get_or_create(
        self, session_id: str | None, working_directory: str
    ) -> ConversationSession:
        if session_id and session_id in self._sessions:
            session = self._sessions[session_id]
            session.last_activity = time.monotonic()
            return session
        session = ConversationSession(
            id=session_id or str(uuid.uuid4()), working_directory=working_directory
        )
        self._sessions[session.id] = session
        return session

    def _begin(
        self, task: str, session_id: str | None, working_directory: str
    ) -> tuple[ConversationSession, list[dict[str, Any]]]:
        session = self._get_or_create(session_id, working_directory)
        session.messages.append({"role": "user", "content": task})
        self._store.upsert(session.id, task, session.working_directory)
        return session, list(session.messages)

    def _request(
        self, session: ConversationSession, messages: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return {
            "model": self._model,
            "max_tokens": MAX_TOKENS,
            "system": SYSTEM_PROMPT.format(working_directory=session.working_directory),
            "tools": TOOLS,
            "messages": messages,
        }

    async def execute_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AgentTaskResponse:
        session, messages = self._begin(task, session_id, working_directory)
        tool_calls: list[AgentToolCall] = []
        usage = UsageDelta()

        response = await self._client.messages.create(**self._request(session, messages))
        _add_usage(usage, response.usage)
        while response.stop_reason == "tool_use":
            tool_results: list[dict[str, Any]] = []
            for block in response.content:
                if block.type != "tool_use":
                    continue
                tool_input = dict(block.input) if isinstance(block.input, dict) else {}
                result = await execute_tool(block.name, tool_input, session.working_directory)
                tool_calls.append(
                    AgentToolCall(id=block.id, name=block.name, input=tool_input, result=result)
                )
                tool_results.append(
                    {"type": "tool_result", "tool_use_id": block.id, "content": result}
                )
            messages.append(_assistant_turn(response.content))
            messages.append({"role": "user", "content": tool_results})
            response = await self._client.messages.create(**self._request(session, messages))
            _add_usage(usage, response.usage)

        final_text = "\n".join(b.text for b in response.content if b.type == "text")
        session.messages.append({"role": "assistant", "content": final_text})
        self._store.update_usage(session.id, usage)
        return AgentTaskResponse(
            session_id=session.id,
            response=final_text,
            tool_calls=tool_calls,
            stop_reason=response.stop_reason or "end_turn",
        )

    async def stream_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AsyncIterator[StreamEvent]:
        session, messages = self._begin(task, session_id, working_directory)
        usage = UsageDelta()
        yield events.connected(session.id)

        try:
            while True:
                async with self._client.messages.stream(
                    **self._request(session, messages)
                ) as stream:
                    async for event in stream:
                        if event.type != "content_block_delta":
                            continue
                        if event.delta.type == "text_delta":
                            yield events.token(event.delta.text)
                    final = await stream.get_final_message()
                _add_usage(usage, final.usage)

                tool_uses = [b for b in final.content if b.type == "tool_use"]
                if not tool_uses:
                    break

                tool_results: list[dict[str, Any]] = []
                for block in tool_uses:
                    tool_input = dict(block.input) if isinstance(block.input, dict) else {}
                    yield events.tool_use(block.id, block.name, tool_input)
                    result = await execute_tool(block.name, tool_input, session.working_directory)
                    yield events.tool_result(block.id, result)
                    tool_results.append(
                        {"type": "tool_result", "tool_use_id": block.id, "content": result}
                    )
                messages.append(_assistant_turn(final.content))
                messages.append({"role": "user", "content": tool_results})
        except Exception as e:
            logger.exception("Tool loop stream failed for session %s", session.id)
            yield events.error(str(e) or type(e).__name__)
            return

        final_text = "\n".join(b.text for b in final.content if b.type == "text")
        session.messages.append({"role": "assistant", "content": final_text})
        self._store.update_usage(session.id, usage)
        yield events.complete(
            session.id,
            final.stop_reason or "end_turn",
            UsageTotals(input=usage.input, output=usage.output, cost_usd=usage.cost_usd),
            final_text,
        )


def _add_usage(total: UsageDelta, usage: Any) -> None:
    if usage is None:
        return
    total.input += (
        (usage.input_tokens or 0)
        + (getattr(usage, "cache_read_input_tokens", None) or 0)
        + (getattr(usage, "cache_creation_input_tokens", None) or 0)
    )
    total.output += usage.output_tokens or 0


def _assistant_turn(content: list[Any]) -> dict[str, Any]:
    return {"role": "assistant", "content": [b.model_dump(exclude_none=True) for b in content]}
