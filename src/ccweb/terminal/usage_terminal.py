"""Long-lived Claude CLI session used to scrape ``/usage``.

The CLI has no machine-readable usage endpoint, so a single interactive
process is kept alive in a pty. Commands are typed into it one at a time and
their output is captured until command-specific completion markers appear.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ccweb.errors import (
    CommandTimeoutError,
    TerminalExitedError,
    TerminalNotReadyError,
    TerminalStartupError,
    UsageTerminalError,
)
from ccweb.terminal.pty_process import PTYProcess

logger = logging.getLogger(__name__)

READY_MARKER = "for shortcuts"
USAGE_COMMAND = "/usage"
COMPLETION_MARKERS: dict[str, tuple[str, ...]] = {
    USAGE_COMMAND: ("% used", "Resets"),
}
ESCAPE = "\x1b"
CTRL_C = "\x03"


class TerminalState(Enum):
    """Lifecycle of the usage terminal process."""

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"  # a command is in flight
    IDLE = "idle"
    EXITED = "exited"
    RESTARTING = "restarting"


VALID_TRANSITIONS: dict[TerminalState, frozenset[TerminalState]] = {
    TerminalState.STOPPED: frozenset({TerminalState.STARTING}),
    TerminalState.STARTING: frozenset(
        {TerminalState.READY, TerminalState.EXITED, TerminalState.STOPPED}
    ),
    TerminalState.READY: frozenset(
        {TerminalState.BUSY, TerminalState.EXITED, TerminalState.STOPPED}
    ),
    TerminalState.BUSY: frozenset(
        {TerminalState.IDLE, TerminalState.EXITED, TerminalState.STOPPED}
    ),
    TerminalState.IDLE: frozenset(
        {TerminalState.BUSY, TerminalState.EXITED, TerminalState.STOPPED}
    ),
    TerminalState.EXITED: frozenset({TerminalState.RESTARTING, TerminalState.STOPPED}),
    TerminalState.RESTARTING: frozenset({TerminalState.STARTING, TerminalState.STOPPED}),
}

READY_STATES: frozenset[TerminalState] = frozenset(
    {TerminalState.READY, TerminalState.BUSY, TerminalState.IDLE}
)


def is_valid_transition(current: TerminalState, target: TerminalState) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


@dataclass(eq=False)
class PendingCommand:
    command: str
    future: asyncio.Future[str]
    timer: asyncio.TimerHandle | None = None
    keystrokes: list[asyncio.TimerHandle] = field(default_factory=list)


class UsageTerminal:
    """Serializes commands into one persistent CLI process."""

    def __init__(
        self,
        command: str = "claude",
        cwd: str = ".",
        *,
        pty_factory: Callable[[], PTYProcess] = PTYProcess,
        cols: int = 120,
        rows: int = 50,
        startup_timeout: float = 30.0,
        tab_delay: float = 0.3,
        enter_delay: float = 0.2,
        settle_delay: float = 1.0,
        restart_delay: float = 5.0,
        stop_delay: float = 0.5,
        command_timeout: float = 15.0,
        usage_timeout: float = 10.0,
    ) -> None:
        self._command = command
        self._cwd = cwd
        self._pty_factory = pty_factory
        self._cols = cols
        self._rows = rows
        self._startup_timeout = startup_timeout
        self._tab_delay = tab_delay
        self._enter_delay = enter_delay
        self._settle_delay = settle_delay
        self._restart_delay = restart_delay
        self._stop_delay = stop_delay
        self.command_timeout = command_timeout
        self.usage_timeout = usage_timeout

        self._state = TerminalState.STOPPED
        self._pty: PTYProcess | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._startup: asyncio.Future[bool] | None = None
        self._queue: deque[PendingCommand] = deque()
        self._current: PendingCommand | None = None
        self._settle_handle: asyncio.TimerHandle | None = None
        self._reap_task: asyncio.Task[None] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._stopping = False

    # -- state --

    @property
    def state(self) -> TerminalState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state in READY_STATES

    def _transition(self, target: TerminalState) -> None:
        if not is_valid_transition(self._state, target):
            raise RuntimeError(f"Invalid usage terminal transition {self._state} -> {target}")
        logger.debug("Usage terminal %s -> %s", self._state.value, target.value)
        self._state = target

    # -- lifecycle --

    async def start(self) -> None:
        """Spawn the CLI and wait for its prompt.

        Raises TerminalStartupError when the prompt does not appear in time;
        the process is left running and becomes ready if the prompt shows up
        later.
        """
        if self._pty is not None:
            logger.info("Usage terminal already running")
            return

        self._stopping = False
        self._transition(TerminalState.STARTING)
        self._buffer = ""
        self._decoder.reset()

        logger.info("Starting persistent Claude terminal (%s)", self._command)
        pty_process = self._pty_factory()
        try:
            pty_process.start(
                [self._command], cwd=self._cwd, rows=self._rows, cols=self._cols
            )
        except OSError as e:
            self._transition(TerminalState.STOPPED)
            raise TerminalStartupError(f"Failed to spawn {self._command}: {e}") from e

        loop = asyncio.get_running_loop()
        self._startup = startup = loop.create_future()
        self._pty = pty_process
        pty_process.attach_to_loop(loop, self._on_data)

        try:
            became_ready = await asyncio.wait_for(
                asyncio.shield(startup), timeout=self._startup_timeout
            )
        except TimeoutError:
            raise TerminalStartupError("Claude terminal startup timeout") from None
        if not became_ready:
            raise TerminalStartupError("Claude terminal exited during startup")

    async def stop(self) -> None:
        """Ask the CLI to exit, then close the pty. No restart follows."""
        self._stopping = True
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None

        pty_process = self._pty
        if pty_process is not None:
            self._write_raw(CTRL_C + CTRL_C)
            self._write_raw("/exit\r")
            await asyncio.sleep(self._stop_delay)
            pty_process.close()
            self._pty = None
        if self._startup is not None and not self._startup.done():
            self._startup.set_result(False)

        if self._reap_task is not None:
            self._reap_task.cancel()
            self._reap_task = None

        self._fail_pending(TerminalExitedError("Terminal stopped"))
        if self._state is not TerminalState.STOPPED:
            self._transition(TerminalState.STOPPED)

    # -- output handling --

    def _on_data(self, data: bytes) -> None:
        if not data:
            self._reap_task = asyncio.get_running_loop().create_task(self._reap())
            return

        self._buffer += self._decoder.decode(data)

        if self._state is TerminalState.STARTING and READY_MARKER in self._buffer:
            self._transition(TerminalState.READY)
            if self._startup is not None and not self._startup.done():
                self._startup.set_result(True)
            logger.info("Claude terminal ready")
            self._process_queue()

        self._check_completion()

    async def _reap(self) -> None:
        pty_process = self._pty
        if pty_process is None:
            return
        code = await pty_process.wait()
        if self._pty is pty_process:
            self._handle_exit(code)

    def _handle_exit(self, code: int) -> None:
        logger.info("Claude terminal exited with code %s", code)
        if self._pty is not None:
            self._pty.close()
            self._pty = None
        if self._startup is not None and not self._startup.done():
            self._startup.set_result(False)
        self._fail_pending(TerminalExitedError("Terminal exited"))

        if self._stopping:
            return
        self._transition(TerminalState.EXITED)
        self._restart_task = asyncio.get_running_loop().create_task(self._restart())

    async def _restart(self) -> None:
        await asyncio.sleep(self._restart_delay)
        if self._stopping:
            return
        logger.info("Auto-restarting Claude terminal...")
        self._transition(TerminalState.RESTARTING)
        try:
            await self.start()
        except UsageTerminalError:
            logger.exception("Usage terminal restart failed")

    def _fail_pending(self, exc: Exception) -> None:
        self._cancel_settle()
        pending = [self._current, *self._queue] if self._current else list(self._queue)
        self._current = None
        self._queue.clear()
        for item in pending:
            _cancel_handles(item)
            if not item.future.done():
                item.future.set_exception(exc)

    # -- command queue --

    async def run_command(self, command: str, timeout: float | None = None) -> str:
        """Queue ``command`` and return the terminal output it produced."""
        if self._pty is None or not self.ready:
            raise TerminalNotReadyError("Claude terminal not ready. Please wait for it to start.")

        loop = asyncio.get_running_loop()
        pending = PendingCommand(command=command, future=loop.create_future())
        pending.timer = loop.call_later(
            self.command_timeout if timeout is None else timeout, self._on_timeout, pending
        )
        self._queue.append(pending)
        self._process_queue()
        return await pending.future

    async def get_usage(self) -> str:
        return await self.run_command(USAGE_COMMAND, self.usage_timeout)

    def _process_queue(self) -> None:
        if self._current is not None or not self._queue or not self.ready:
            return
        self._current = self._queue.popleft()
        self._buffer = ""
        self._transition(TerminalState.BUSY)
        self._type_command(self._current)

    def _type_command(self, pending: PendingCommand) -> None:
        command = pending.command
        if not command.startswith("/"):
            self._write_raw(command + "\r")
            return
        # Slash commands open an autocomplete menu; Tab selects, Enter runs.
        loop = asyncio.get_running_loop()
        self._write_raw(command)
        pending.keystrokes.append(loop.call_later(self._tab_delay, self._write_raw, "\t"))
        pending.keystrokes.append(
            loop.call_later(self._tab_delay + self._enter_delay, self._write_raw, "\r")
        )

    def _check_completion(self) -> None:
        current = self._current
        if current is None or self._settle_handle is not None:
            return
        markers = COMPLETION_MARKERS.get(current.command)
        if not markers or not all(marker in self._buffer for marker in markers):
            return
        # Let the rest of the screen render before capturing it.
        self._settle_handle = asyncio.get_running_loop().call_later(
            self._settle_delay, self._finish_current, current
        )

    def _finish_current(self, pending: PendingCommand) -> None:
        self._settle_handle = None
        if self._current is not pending:
            return
        output = self._buffer
        self._buffer = ""
        self._current = None
        _cancel_handles(pending)
        if not pending.future.done():
            pending.future.set_result(output)
        try:
            self._write_raw(ESCAPE)
        except OSError:
            logger.warning("Failed to dismiss the usage screen", exc_info=True)
        finally:
            self._transition(TerminalState.IDLE)
        self._process_queue()

    def _on_timeout(self, pending: PendingCommand) -> None:
        if pending in self._queue:
            self._queue.remove(pending)
        if self._current is pending:
            self._cancel_settle()
            self._current = None
            self._transition(TerminalState.IDLE)
        _cancel_handles(pending)
        if not pending.future.done():
            pending.future.set_exception(CommandTimeoutError(f"Command timeout: {pending.command}"))
        self._process_queue()

    def _cancel_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    # -- raw access --

    def _write_raw(self, data: str) -> None:
        if self._pty is not None:
            self._pty.write(data)

    def write(self, data: str) -> None:
        self._write_raw(data)

    def resize(self, cols: int, rows: int) -> None:
        if self._pty is not None:
            self._pty.resize(rows, cols)


def _cancel_handles(pending: PendingCommand) -> None:
    if pending.timer is not None:
        pending.timer.cancel()
    for handle in pending.keystrokes:
        handle.cancel()
