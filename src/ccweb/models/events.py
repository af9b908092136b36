"""Stream event vocabulary emitted by the agent runners.

Every event serializes to ``{"type": <kind>, "data": <payload>}``; the SSE
route writes that object as one ``data:`` frame.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from ccweb.models.base import CamelModel
from ccweb.models.sessions import UsageTotals


class ConnectedData(CamelModel):
    session_id: str


class TokenData(CamelModel):
    text: str


class ToolUseData(CamelModel):
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultData(CamelModel):
    id: str
    result: str
    is_error: bool = False


class CompleteData(CamelModel):
    session_id: str
    stop_reason: str = "end_turn"
    usage: UsageTotals = Field(default_factory=UsageTotals)
    result: str = ""


class ErrorData(CamelModel):
    message: str


class ConnectedEvent(CamelModel):
    type: Literal["connected"] = "connected"
    data: ConnectedData


class TokenEvent(CamelModel):
    type: Literal["token"] = "token"
    data: TokenData


class ToolUseEvent(CamelModel):
    type: Literal["tool_use"] = "tool_use"
    data: ToolUseData


class ToolResultEvent(CamelModel):
    type: Literal["tool_result"] = "tool_result"
    data: ToolResultData


class CompleteEvent(CamelModel):
    type: Literal["complete"] = "complete"
    data: CompleteData


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    data: ErrorData


StreamEvent = Annotated[
    ConnectedEvent | TokenEvent | ToolUseEvent | ToolResultEvent | CompleteEvent | ErrorEvent,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def connected(session_id: str) -> ConnectedEvent:
    return ConnectedEvent(data=ConnectedData(session_id=session_id))


def token(text: str) -> TokenEvent:
    return TokenEvent(data=TokenData(text=text))


def tool_use(tool_id: str, name: str, tool_input: dict[str, Any] | None) -> ToolUseEvent:
    return ToolUseEvent(data=ToolUseData(id=tool_id, name=name, input=tool_input or {}))


def tool_result(tool_id: str, result: object, is_error: bool = False) -> ToolResultEvent:
    return ToolResultEvent(
        data=ToolResultData(id=tool_id, result=stringify_result(result), is_error=is_error)
    )


def complete(
    session_id: str, stop_reason: str, usage: UsageTotals | None = None, result: str = ""
) -> CompleteEvent:
    return CompleteEvent(
        data=CompleteData(
            session_id=session_id,
            stop_reason=stop_reason,
            usage=usage or UsageTotals(),
            result=result,
        )
    )


def error(message: str) -> ErrorEvent:
    return ErrorEvent(data=ErrorData(message=message))


def stringify_result(result: object) -> str:
    """Tool results are sent as-is when they are strings, JSON otherwise."""
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    return json.dumps(result, ensure_ascii=False, default=str)


def to_sse_frame(event: StreamEvent) -> str:
    """Render one event as a Server-Sent-Events frame."""
    payload = json.dumps(event.to_wire(), ensure_ascii=False)
    return f"data: {payload}\n\n"
