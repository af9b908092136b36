"""Agent runner backed by the Claude Agent SDK.

The SDK owns conversation state and session ids; this module only translates
its message stream into ccweb's event vocabulary and records usage in the
session store.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserMessage,
    query,
)
from claude_agent_sdk.types import StreamEvent as SDKStreamEvent

from ccweb.models import events
from ccweb.models.agent import AgentTaskResponse, AgentToolCall
from ccweb.models.events import StreamEvent
from ccweb.models.sessions import UsageDelta, UsageTotals

if TYPE_CHECKING:
    from ccweb.services.session_store import SessionStore

logger = logging.getLogger(__name__)

QueryFn = Callable[..., AsyncIterator[Any]]


def usage_from_result(message: ResultMessage) -> UsageDelta:
    """Token and cost totals from a result message; cache tokens count as input."""
    usage = message.usage or {}
    return UsageDelta(
        input=(
            int(usage.get("input_tokens") or 0)
            + int(usage.get("cache_read_input_tokens") or 0)
            + int(usage.get("cache_creation_input_tokens") or 0)
        ),
        output=int(usage.get("output_tokens") or 0),
        cost_usd=float(message.total_cost_usd or 0.0),
    )


def stop_reason_from_result(message: ResultMessage) -> str:
    stop_reason = getattr(message, "stop_reason", None)
    if stop_reason:
        return str(stop_reason)
    return "error" if message.is_error else "end_turn"


def text_delta(event: dict[str, Any]) -> str:
    """Text carried by a partial ``content_block_delta`` stream event, if any."""
    if event.get("type") != "content_block_delta":
        return ""
    delta = event.get("delta")
    if not isinstance(delta, dict) or delta.get("type") != "text_delta":
        return ""
    text = delta.get("text")
    return text if isinstance(text, str) else ""


@dataclass
class _TaskState:
    """Accumulated state for one SDK call."""

    session_id: str
    text_parts: list[str] = field(default_factory=list)
    tool_calls: dict[str, AgentToolCall] = field(default_factory=dict)
    saw_deltas: bool = False


class AgentRunner:
    """Runs one task per call through ``claude_agent_sdk.query``."""

    def __init__(
        self,
        store: SessionStore,
        *,
        model: str | None = None,
        query_fn: QueryFn = query,
    ) -> None:
        self._store = store
        self._model = model
        self._query = query_fn

    def _options(self, session_id: str | None, working_directory: str) -> ClaudeAgentOptions:
        return ClaudeAgentOptions(
            cwd=working_directory,
            resume=session_id or None,
            model=self._model,
            include_partial_messages=True,
        )

    def _on_init(
        self, message: SystemMessage, state: _TaskState, task: str, working_directory: str
    ) -> bool:
        if message.subtype != "init":
            return False
        sdk_session_id = message.data.get("session_id")
        if isinstance(sdk_session_id, str) and sdk_session_id:
            state.session_id = sdk_session_id
        self._store.upsert(state.session_id, task, working_directory)
        return True

    def _on_result(self, message: ResultMessage, state: _TaskState) -> UsageDelta:
        if message.session_id:
            state.session_id = message.session_id
        usage = usage_from_result(message)
        self._store.update_usage(state.session_id, usage)
        return usage

    async def execute_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AgentTaskResponse:
        """Drain one SDK call and return its final response.

        SDK exceptions propagate to the caller.
        """
        state = _TaskState(session_id=session_id or "")
        final_text = ""
        stop_reason = "end_turn"

        async for message in self._query(
            prompt=task, options=self._options(session_id, working_directory)
        ):
            match message:
                case SystemMessage():
                    self._on_init(message, state, task, working_directory)
                case AssistantMessage():
                    for block in message.content:
                        if isinstance(block, TextBlock):
                            state.text_parts.append(block.text)
                        elif isinstance(block, ToolUseBlock):
                            state.tool_calls[block.id] = AgentToolCall(
                                id=block.id, name=block.name, input=dict(block.input)
                            )
                case UserMessage() if isinstance(message.content, list):
                    for block in message.content:
                        if isinstance(block, ToolResultBlock):
                            call = state.tool_calls.get(block.tool_use_id)
                            if call is not None:
                                call.result = events.stringify_result(block.content)
                case ResultMessage():
                    self._on_result(message, state)
                    final_text = message.result or "\n".join(state.text_parts)
                    stop_reason = stop_reason_from_result(message)

        return AgentTaskResponse(
            session_id=state.session_id,
            response=final_text or "\n".join(state.text_parts),
            tool_calls=list(state.tool_calls.values()),
            stop_reason=stop_reason,
        )

    async def stream_task(
        self, task: str, session_id: str | None, working_directory: str
    ) -> AsyncIterator[StreamEvent]:
        """Yield normalized events for one SDK call.

        An SDK failure becomes a final ``error`` event instead of an exception.
        """
        state = _TaskState(session_id=session_id or "")
        connected = False

        try:
            async for message in self._query(
                prompt=task, options=self._options(session_id, working_directory)
            ):
                match message:
                    case SystemMessage():
                        if not connected and self._on_init(
                            message, state, task, working_directory
                        ):
                            connected = True
                            yield events.connected(state.session_id)
                    case SDKStreamEvent():
                        text = text_delta(message.event)
                        if text:
                            state.saw_deltas = True
                            yield events.token(text)
                    case AssistantMessage():
                        for block in message.content:
                            if isinstance(block, TextBlock):
                                if not state.saw_deltas and block.text:
                                    yield events.token(block.text)
                            elif isinstance(block, ToolUseBlock):
                                yield events.tool_use(block.id, block.name, dict(block.input))
                        state.saw_deltas = False
                    case UserMessage() if isinstance(message.content, list):
                        for block in message.content:
                            if isinstance(block, ToolResultBlock):
                                yield events.tool_result(
                                    block.tool_use_id, block.content, bool(block.is_error)
                                )
                    case ResultMessage():
                        usage = self._on_result(message, state)
                        yield events.complete(
                            state.session_id,
                            stop_reason_from_result(message),
                            UsageTotals(
                                input=usage.input, output=usage.output, cost_usd=usage.cost_usd
                            ),
                            message.result or "",
                        )
        except Exception as e:
            logger.exception("Agent stream failed for session %s", state.session_id or "<new>")
            yield events.error(str(e) or type(e).__name__)
