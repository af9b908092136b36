"""Shared fixtures for ccweb tests."""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable
from pathlib import Path

import pytest

from ccweb.config import Config
from ccweb.services.session_store import SessionStore

SAMPLE_SESSION_PATH = Path(__file__).parent / "data" / "sample_session.jsonl"
SAMPLE_PROJECT_DIR = "-tmp-test-project"
SAMPLE_SESSION_ID = "test-session-001"


class FakePTY:
    """In-memory stand-in for PTYProcess; tests push output and exits by hand."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.command: list[str] | None = None
        self.cwd: str | None = None
        self.env: dict[str, str] | None = None
        self.size: tuple[int, int] | None = None
        self.written: list[str] = []
        self.resizes: list[tuple[int, int]] = []
        self.closed = False
        self._on_data: Callable[[bytes], None] | None = None
        self._exit_code: int | None = None
        self._exited = asyncio.Event()

    def start(
        self,
        command: list[str],
        cwd: str = ".",
        env: dict[str, str] | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> None:
        if self.fail:
            raise OSError("spawn failed")
        self.command = command
        self.cwd = cwd
        self.env = env
        self.size = (rows, cols)

    def attach_to_loop(
        self, loop: asyncio.AbstractEventLoop, on_data_callback: Callable[[bytes], None]
    ) -> None:
        self._on_data = on_data_callback

    def feed(self, data: str | bytes) -> None:
        assert self._on_data is not None
        self._on_data(data.encode() if isinstance(data, str) else data)

    def exit(self, code: int = 0) -> None:
        self._exit_code = code
        self._exited.set()
        if self._on_data is not None:
            self._on_data(b"")

    async def wait(self) -> int:
        await self._exited.wait()
        assert self._exit_code is not None
        return self._exit_code

    def write(self, data: str) -> None:
        self.written.append(data)

    def resize(self, rows: int, cols: int) -> None:
        self.resizes.append((rows, cols))

    def close(self) -> None:
        self.closed = True

    @property
    def is_alive(self) -> bool:
        return not self.closed and self._exit_code is None

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def pid(self) -> int | None:
        return 4242


class FakePTYFactory:
    """Callable used as ``pty_factory``; remembers every FakePTY it builds."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.created: list[FakePTY] = []

    def __call__(self) -> FakePTY:
        pty = FakePTY(fail=self.fail)
        self.created.append(pty)
        return pty

    @property
    def last(self) -> FakePTY:
        return self.created[-1]


async def drain(times: int = 5) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.fixture
def sample_session_path() -> Path:
    """Path to the sample session JSONL file."""
    return SAMPLE_SESSION_PATH


@pytest.fixture
def tmp_claude_dir(tmp_path: Path) -> Path:
    """Create a temporary Claude directory with one sample transcript."""
    claude_dir = tmp_path / ".claude"
    projects_dir = claude_dir / "projects" / SAMPLE_PROJECT_DIR
    projects_dir.mkdir(parents=True)
    shutil.copy(SAMPLE_SESSION_PATH, projects_dir / f"{SAMPLE_SESSION_ID}.jsonl")
    return claude_dir


@pytest.fixture
def test_config(tmp_claude_dir: Path, tmp_path: Path) -> Config:
    """Config pointing at temporary test data, with the usage terminal off."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    return Config(
        claude_dir=tmp_claude_dir,
        storage_dir=tmp_path / "storage",
        anthropic_api_key="test-key",
        default_working_dir=str(workdir),
        usage_terminal_enabled=False,
    )


@pytest.fixture
def store(test_config: Config) -> SessionStore:
    return SessionStore(
        test_config.sessions_file, test_config.projects_dir, test_config.stats_cache_path
    )


@pytest.fixture
def pty_factory() -> FakePTYFactory:
    return FakePTYFactory()
