"""WebSocket frames exchanged with the browser terminal."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from ccweb.models.base import CamelModel


class TerminalInput(BaseModel):
    type: Literal["input"]
    data: str


class TerminalResize(BaseModel):
    type: Literal["resize"]
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


TerminalClientMessage = Annotated[TerminalInput | TerminalResize, Field(discriminator="type")]

client_message_adapter: TypeAdapter[TerminalClientMessage] = TypeAdapter(TerminalClientMessage)


class TerminalConnected(CamelModel):
    type: Literal["connected"] = "connected"
    session_id: str
    cwd: str


class TerminalOutput(CamelModel):
    type: Literal["output"] = "output"
    data: str


class TerminalExit(CamelModel):
    type: Literal["exit"] = "exit"
    code: int


class TerminalError(CamelModel):
    type: Literal["error"] = "error"
    message: str
