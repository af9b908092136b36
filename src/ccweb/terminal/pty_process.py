"""Thin wrapper around a child process attached to a pseudo-terminal."""

from __future__ import annotations

import asyncio
import errno
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PTYProcess:
    """One child process on a fresh pty.

    Output is delivered through the event loop's reader callback; an empty
    ``bytes`` chunk signals EOF.
    """

    def __init__(self) -> None:
        self._master_fd: int | None = None
        self._process: subprocess.Popen[bytes] | None = None
        self._on_data: Callable[[bytes], None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._kill_task: asyncio.Task[None] | None = None

    # -- lifecycle --

    def start(
        self,
        command: list[str],
        cwd: str = ".",
        env: dict[str, str] | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> None:
        master_fd, slave_fd = pty.openpty()

        # The child inherits the window size set here.
        fcntl.ioctl(master_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))

        spawn_env = os.environ.copy()
        if env:
            spawn_env.update(env)
        spawn_env.setdefault("TERM", "xterm-256color")

        try:
            self._process = subprocess.Popen(
                command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=spawn_env,
                start_new_session=True,
            )
        except OSError:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        self._master_fd = master_fd
        flags = fcntl.fcntl(master_fd, fcntl.F_GETFL)
        fcntl.fcntl(master_fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)

    def attach_to_loop(
        self,
        loop: asyncio.AbstractEventLoop,
        on_data_callback: Callable[[bytes], None],
    ) -> None:
        if self._master_fd is None:
            raise RuntimeError("PTYProcess not started")
        self._loop = loop
        self._on_data = on_data_callback
        loop.add_reader(self._master_fd, self._on_readable)

    def _on_readable(self) -> None:
        assert self._master_fd is not None
        try:
            data = os.read(self._master_fd, 65536)
        except OSError as exc:
            # EIO means the child closed its side of the pty.
            if exc.errno != errno.EIO:
                logger.warning("Unexpected OSError on PTY read (errno=%s): %s", exc.errno, exc)
            data = b""
        if not data:
            self._detach_reader()
        if self._on_data:
            self._on_data(data)

    def _detach_reader(self) -> None:
        if self._loop is not None and self._master_fd is not None:
            self._loop.remove_reader(self._master_fd)

    async def wait(self) -> int:
        """Wait for the child to exit and return its exit code."""
        if self._process is None:
            raise RuntimeError("PTYProcess not started")
        return await asyncio.to_thread(self._process.wait)

    # -- I/O --

    def write(self, data: str) -> None:
        if self._master_fd is None:
            raise RuntimeError("PTYProcess not started")
        os.write(self._master_fd, data.encode())

    def resize(self, rows: int, cols: int) -> None:
        if self._master_fd is None:
            raise RuntimeError("PTYProcess not started")
        fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))
        if self.is_alive:
            self.send_signal(signal.SIGWINCH)

    def send_signal(self, sig: int) -> None:
        if self._process is None:
            raise RuntimeError("PTYProcess not started")
        try:
            os.killpg(os.getpgid(self._process.pid), sig)
        except ProcessLookupError:
            pass

    def terminate(self, kill_timeout: float = 3.0) -> None:
        """SIGTERM the child, escalating to SIGKILL after ``kill_timeout``.

        Inside a running event loop the escalation is a background task and
        this returns at once; without one it blocks until the child is gone.
        """
        if self._process is None or not self.is_alive:
            return
        self.send_signal(signal.SIGTERM)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                self._process.wait(timeout=kill_timeout)
            except subprocess.TimeoutExpired:
                self.send_signal(signal.SIGKILL)
            return
        if self._kill_task is None or self._kill_task.done():
            self._kill_task = loop.create_task(self._kill_after(kill_timeout))

    async def _kill_after(self, timeout: float) -> None:
        assert self._process is not None
        deadline = time.monotonic() + timeout
        while self._process.poll() is None:
            if time.monotonic() >= deadline:
                logger.warning("pid %s ignored SIGTERM, sending SIGKILL", self._process.pid)
                self.send_signal(signal.SIGKILL)
                return
            await asyncio.sleep(0.05)

    # -- properties --

    @property
    def is_alive(self) -> bool:
        if self._process is None:
            return False
        return self._process.poll() is None

    @property
    def exit_code(self) -> int | None:
        if self._process is None:
            return None
        return self._process.poll()

    @property
    def pid(self) -> int | None:
        if self._process is None:
            return None
        return self._process.pid

    # -- cleanup --

    def close(self) -> None:
        """Stop reading, close the master fd and terminate the child if alive."""
        self._detach_reader()
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None
        if self._process is not None and self.is_alive:
            self.terminate()
        self._on_data = None
        self._loop = None
