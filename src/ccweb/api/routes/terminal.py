"""Browser terminal WebSocket: one shell pty per connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ccweb.api.deps import get_services
from ccweb.models.terminal import (
    TerminalConnected,
    TerminalError,
    TerminalExit,
    TerminalInput,
    TerminalOutput,
    TerminalResize,
    client_message_adapter,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["terminal"])


@router.websocket("/terminal")
async def terminal_socket(
    websocket: WebSocket,
    cwd: str | None = None,
    requested_id: Annotated[str | None, Query(alias="sessionId")] = None,
) -> None:
    services = get_services(websocket)
    manager = services.terminal_manager
    session_id = requested_id or str(uuid.uuid4())

    await websocket.accept()
    logger.info("Terminal WebSocket connected: %s", session_id)

    # pty callbacks run outside the socket's coroutine; frames go through a queue.
    outbox: asyncio.Queue[dict[str, object] | None] = asyncio.Queue()

    def on_data(data: str) -> None:
        outbox.put_nowait(TerminalOutput(data=data).to_wire())

    def on_exit(code: int) -> None:
        outbox.put_nowait(TerminalExit(code=code).to_wire())
        outbox.put_nowait(None)

    working_dir = cwd or services.config.default_working_dir
    session = manager.create(session_id, working_dir, on_data, on_exit)
    if session is None:
        while not outbox.empty():
            frame = outbox.get_nowait()
            if frame is not None:
                await websocket.send_json(frame)
        error = TerminalError(message="Failed to create terminal session")
        await websocket.send_json(error.to_wire())
        await websocket.close()
        return

    await websocket.send_json(TerminalConnected(session_id=session.id, cwd=session.cwd).to_wire())

    async def pump_output() -> None:
        while (frame := await outbox.get()) is not None:
            await websocket.send_json(frame)
        await websocket.close()

    async def pump_input() -> None:
        while True:
            raw = await websocket.receive_text()
            try:
                message = client_message_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning("Ignoring invalid terminal message: %s", e.errors()[:1])
                continue
            match message:
                case TerminalInput(data=data):
                    manager.write(session_id, data)
                case TerminalResize(cols=cols, rows=rows):
                    manager.resize(session_id, cols, rows)

    tasks = [asyncio.create_task(pump_output()), asyncio.create_task(pump_input())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("Terminal WebSocket error for %s: %s", session_id, exc)
    finally:
        for task in tasks:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*tasks, return_exceptions=True)
        if manager.get(session_id) is session:
            manager.kill(session_id)
        logger.info("Terminal WebSocket disconnected: %s", session_id)
