"""Service container with DI wiring."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from anthropic import AsyncAnthropic

from ccweb.errors import UsageTerminalError
from ccweb.services.agent_runner import AgentRunner
from ccweb.services.file_service import FileService
from ccweb.services.rate_limit_service import RateLimitService
from ccweb.services.session_service import SessionService
from ccweb.services.session_store import SessionStore
from ccweb.services.tool_loop import ToolLoopRunner
from ccweb.terminal.manager import TerminalSessionManager
from ccweb.terminal.pty_process import PTYProcess
from ccweb.terminal.usage_terminal import UsageTerminal

if TYPE_CHECKING:
    from ccweb.config import Config
    from ccweb.services.protocols import AgentRunnerProtocol

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Holds all application services. Built once at startup."""

    config: Config
    store: SessionStore
    session_service: SessionService
    agent_runner: AgentRunnerProtocol
    file_service: FileService
    terminal_manager: TerminalSessionManager
    usage_terminal: UsageTerminal | None = None
    rate_limit_service: RateLimitService | None = None
    _background: list[asyncio.Task[None]] = field(default_factory=list, repr=False)

    @classmethod
    async def create(
        cls, config: Config, *, pty_factory: Callable[[], PTYProcess] = PTYProcess
    ) -> ServiceContainer:
        """Async factory that wires all dependencies."""
        config.validate()
        store = SessionStore(config.sessions_file, config.projects_dir, config.stats_cache_path)

        agent_runner: AgentRunnerProtocol
        if config.agent_backend == "messages":
            agent_runner = ToolLoopRunner(
                store, AsyncAnthropic(api_key=config.anthropic_api_key), model=config.model
            )
        else:
            agent_runner = AgentRunner(store, model=config.model)

        usage_terminal = None
        rate_limit_service = None
        if config.usage_terminal_enabled:
            usage_terminal = UsageTerminal(
                config.claude_command, config.default_working_dir, pty_factory=pty_factory
            )
            rate_limit_service = RateLimitService(
                usage_terminal, refresh_interval=config.usage_refresh_interval
            )

        return cls(
            config=config,
            store=store,
            session_service=SessionService(store),
            agent_runner=agent_runner,
            file_service=FileService(config.default_working_dir, config.max_tree_depth),
            terminal_manager=TerminalSessionManager(
                config.default_working_dir, pty_factory=pty_factory
            ),
            usage_terminal=usage_terminal,
            rate_limit_service=rate_limit_service,
        )

    async def start(self) -> None:
        """Start background work. The usage terminal boots without blocking startup."""
        if isinstance(self.agent_runner, ToolLoopRunner):
            self.agent_runner.start()
        if self.usage_terminal is not None:
            self._background.append(asyncio.create_task(self._start_usage_terminal()))
        if self.rate_limit_service is not None:
            self.rate_limit_service.start()

    async def _start_usage_terminal(self) -> None:
        assert self.usage_terminal is not None
        try:
            await self.usage_terminal.start()
        except UsageTerminalError as e:
            logger.warning("Usage terminal unavailable: %s", e)

    async def close(self) -> None:
        """Shut down all services."""
        for task in self._background:
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

        if self.rate_limit_service is not None:
            await self.rate_limit_service.close()
        if self.usage_terminal is not None:
            await self.usage_terminal.stop()
        self.terminal_manager.close_all()
        if isinstance(self.agent_runner, ToolLoopRunner):
            await self.agent_runner.close()
