"""Interactive shell sessions, one pty per browser terminal connection."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from ccweb.terminal.pty_process import PTYProcess

logger = logging.getLogger(__name__)

SHELL_CANDIDATES = ("/bin/zsh", "/bin/bash", "/bin/sh")
TERMINAL_ENV = {"TERM": "xterm-256color", "COLORTERM": "truecolor"}
DEFAULT_COLS = 80
DEFAULT_ROWS = 24

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


def find_shell(environ: dict[str, str] | None = None) -> str:
    """First existing shell among $SHELL and the usual system shells."""
    env = os.environ if environ is None else environ
    candidates = [env.get("SHELL", ""), *SHELL_CANDIDATES]
    for shell in candidates:
        if shell and Path(shell).exists():
            return shell
    return "/bin/sh"


@dataclass(eq=False)
class TerminalSession:
    id: str
    pty: PTYProcess
    cwd: str
    on_exit: ExitCallback
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    exited: bool = False

    def report_exit(self, code: int) -> None:
        """Call ``on_exit`` once, however the session ends."""
        if self.exited:
            return
        self.exited = True
        self.on_exit(code)


class TerminalSessionManager:
    """Owns every live browser terminal; at most one pty per session id."""

    def __init__(
        self,
        default_cwd: str,
        *,
        pty_factory: Callable[[], PTYProcess] = PTYProcess,
        shell: str | None = None,
    ) -> None:
        self._default_cwd = default_cwd
        self._pty_factory = pty_factory
        self._shell = shell or find_shell()
        self._sessions: dict[str, TerminalSession] = {}

    def create(
        self,
        session_id: str,
        cwd: str | None,
        on_data: DataCallback,
        on_exit: ExitCallback,
    ) -> TerminalSession | None:
        """Spawn a shell for ``session_id``, replacing any existing one.

        Returns None when the shell cannot be spawned; the failure has then
        already been reported through ``on_data`` and ``on_exit(1)``.
        """
        if session_id in self._sessions:
            self.kill(session_id)

        working_dir = cwd or self._default_cwd
        if not Path(working_dir).is_dir():
            working_dir = str(Path.home())

        logger.info("Spawning terminal with shell: %s, cwd: %s", self._shell, working_dir)
        pty_process = self._pty_factory()
        try:
            pty_process.start(
                [self._shell],
                cwd=working_dir,
                env=TERMINAL_ENV,
                rows=DEFAULT_ROWS,
                cols=DEFAULT_COLS,
            )
        except OSError as e:
            logger.exception("Failed to spawn terminal")
            on_data(f"\x1b[31mFailed to spawn terminal: {e}\x1b[0m\r\n")
            on_exit(1)
            return None

        session = TerminalSession(id=session_id, pty=pty_process, cwd=working_dir, on_exit=on_exit)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        loop = asyncio.get_running_loop()

        def _on_pty_data(data: bytes) -> None:
            if data:
                text = decoder.decode(data)
                if text:
                    on_data(text)
                return
            loop.create_task(self._reap(session))

        pty_process.attach_to_loop(loop, _on_pty_data)
        self._sessions[session_id] = session
        return session

    async def _reap(self, session: TerminalSession) -> None:
        code = await session.pty.wait()
        # A replacement session may already own this id.
        if self._sessions.get(session.id) is session:
            del self._sessions[session.id]
        session.pty.close()
        session.report_exit(code)

    def write(self, session_id: str, data: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.pty.write(data)
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.pty.resize(rows, cols)
        return True

    def kill(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.pty.close()
        code = session.pty.exit_code
        session.report_exit(code if code is not None else 0)
        return True

    def get(self, session_id: str) -> TerminalSession | None:
        return self._sessions.get(session_id)

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_all(self) -> list[TerminalSession]:
        return list(self._sessions.values())

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.kill(session_id)
