"""Tests for the persistent usage terminal and its rate-limit cache."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakePTYFactory, drain

from ccweb.errors import (
    CommandTimeoutError,
    TerminalExitedError,
    TerminalNotReadyError,
    TerminalStartupError,
    UsageTerminalError,
)
from ccweb.services.rate_limit_service import RateLimitService
from ccweb.terminal.usage_terminal import (
    ESCAPE,
    TerminalState,
    UsageTerminal,
    is_valid_transition,
)

USAGE_OUTPUT = " Current session\n ███ 12% used\n Resets 7pm (Europe/London)\n"


def _terminal(factory: FakePTYFactory, **overrides: float) -> UsageTerminal:
    timings: dict[str, float] = {
        "startup_timeout": 1.0,
        "tab_delay": 0.01,
        "enter_delay": 0.01,
        "settle_delay": 0.01,
        "restart_delay": 10.0,
        "stop_delay": 0.0,
        "command_timeout": 1.0,
        "usage_timeout": 1.0,
    }
    timings.update(overrides)
    return UsageTerminal("claude", "/tmp", pty_factory=factory, **timings)  # type: ignore[arg-type]


async def _started(factory: FakePTYFactory, **overrides: float) -> UsageTerminal:
    terminal = _terminal(factory, **overrides)
    startup = asyncio.create_task(terminal.start())
    await drain()
    factory.last.feed("Welcome back!\n? for shortcuts\n")
    await asyncio.wait_for(startup, 1)
    return terminal


def test_transition_table() -> None:
    assert is_valid_transition(TerminalState.STOPPED, TerminalState.STARTING)
    assert is_valid_transition(TerminalState.BUSY, TerminalState.IDLE)
    assert is_valid_transition(TerminalState.EXITED, TerminalState.RESTARTING)
    assert not is_valid_transition(TerminalState.STOPPED, TerminalState.BUSY)
    assert not is_valid_transition(TerminalState.IDLE, TerminalState.STARTING)


@pytest.mark.asyncio
async def test_start_waits_for_ready_marker(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory)
    assert terminal.state is TerminalState.READY
    assert terminal.ready is True
    assert pty_factory.last.command == ["claude"]
    assert pty_factory.last.size == (50, 120)
    await terminal.stop()


@pytest.mark.asyncio
async def test_run_command_requires_ready(pty_factory: FakePTYFactory) -> None:
    terminal = _terminal(pty_factory)
    with pytest.raises(TerminalNotReadyError):
        await terminal.get_usage()


@pytest.mark.asyncio
async def test_get_usage_types_slash_command_and_captures_output(
    pty_factory: FakePTYFactory,
) -> None:
    terminal = await _started(pty_factory)
    pty = pty_factory.last

    pending = asyncio.create_task(terminal.get_usage())
    await drain()
    assert pty.written == ["/usage"]
    assert terminal.state is TerminalState.BUSY

    await asyncio.sleep(0.05)
    assert pty.written == ["/usage", "\t", "\r"]

    pty.feed(" Current session\n ███ 12% used\n")
    pty.feed(" Resets 7pm (Europe/London)\n")
    output = await asyncio.wait_for(pending, 1)

    assert "12% used" in output
    assert "Resets 7pm" in output
    assert "for shortcuts" not in output
    assert pty.written[-1] == ESCAPE
    assert terminal.state is TerminalState.IDLE
    await terminal.stop()


@pytest.mark.asyncio
async def test_commands_run_one_at_a_time(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory)
    pty = pty_factory.last

    first = asyncio.create_task(terminal.get_usage())
    second = asyncio.create_task(terminal.get_usage())
    await drain()
    assert pty.written.count("/usage") == 1

    pty.feed(USAGE_OUTPUT)
    await asyncio.wait_for(first, 1)
    await drain()
    assert pty.written.count("/usage") == 2

    pty.feed(USAGE_OUTPUT.replace("12%", "13%"))
    assert "13% used" in await asyncio.wait_for(second, 1)
    await terminal.stop()


@pytest.mark.asyncio
async def test_failed_dismiss_still_frees_the_queue(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory)
    pty = pty_factory.last
    record = pty.write

    def write(data: str) -> None:
        if data == ESCAPE:
            raise OSError(5, "Input/output error")
        record(data)

    pty.write = write  # type: ignore[method-assign]

    first = asyncio.create_task(terminal.get_usage())
    second = asyncio.create_task(terminal.get_usage())
    await drain()

    pty.feed(USAGE_OUTPUT)
    assert "12% used" in await asyncio.wait_for(first, 1)
    await drain()
    assert terminal.state is TerminalState.BUSY
    assert pty.written.count("/usage") == 2

    pty.feed(USAGE_OUTPUT.replace("12%", "13%"))
    assert "13% used" in await asyncio.wait_for(second, 1)
    assert terminal.state is TerminalState.IDLE
    await terminal.stop()


@pytest.mark.asyncio
async def test_plain_command_times_out(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory)

    with pytest.raises(CommandTimeoutError, match="Command timeout: hello"):
        await terminal.run_command("hello", timeout=0.05)

    assert pty_factory.last.written == ["hello\r"]
    assert terminal.state is TerminalState.IDLE
    await terminal.stop()


@pytest.mark.asyncio
async def test_startup_timeout_leaves_process_running(pty_factory: FakePTYFactory) -> None:
    terminal = _terminal(pty_factory, startup_timeout=0.05)
    with pytest.raises(TerminalStartupError, match="timeout"):
        await terminal.start()
    assert terminal.state is TerminalState.STARTING

    pty_factory.last.feed("? for shortcuts")
    assert terminal.state is TerminalState.READY
    await terminal.stop()


@pytest.mark.asyncio
async def test_spawn_failure_returns_to_stopped() -> None:
    factory = FakePTYFactory(fail=True)
    terminal = _terminal(factory)
    with pytest.raises(TerminalStartupError, match="Failed to spawn"):
        await terminal.start()
    assert terminal.state is TerminalState.STOPPED


@pytest.mark.asyncio
async def test_exit_during_startup(pty_factory: FakePTYFactory) -> None:
    terminal = _terminal(pty_factory)
    startup = asyncio.create_task(terminal.start())
    await drain()
    pty_factory.last.exit(1)

    with pytest.raises(TerminalStartupError, match="exited during startup"):
        await asyncio.wait_for(startup, 1)
    assert terminal.state is TerminalState.EXITED
    await terminal.stop()
    assert terminal.state is TerminalState.STOPPED


@pytest.mark.asyncio
async def test_exit_fails_pending_command_and_restarts(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory, restart_delay=0.01)
    first_pty = pty_factory.last

    pending = asyncio.create_task(terminal.get_usage())
    await drain()
    first_pty.exit(1)

    with pytest.raises(TerminalExitedError, match="Terminal exited"):
        await asyncio.wait_for(pending, 1)
    assert first_pty.closed

    await asyncio.sleep(0.05)
    assert len(pty_factory.created) == 2
    assert terminal.state is TerminalState.STARTING

    pty_factory.last.feed("? for shortcuts")
    await drain()
    assert terminal.state is TerminalState.READY
    await terminal.stop()


@pytest.mark.asyncio
async def test_stop_exits_cli_and_fails_pending(pty_factory: FakePTYFactory) -> None:
    terminal = await _started(pty_factory)
    pty = pty_factory.last

    pending = asyncio.create_task(terminal.run_command("/usage"))
    await drain()
    await terminal.stop()

    assert "\x03\x03" in pty.written
    assert "/exit\r" in pty.written
    assert pty.closed
    assert terminal.state is TerminalState.STOPPED
    with pytest.raises(TerminalExitedError, match="Terminal stopped"):
        await pending


class FakeUsageSource:
    def __init__(self, outputs: list[str | Exception], ready: bool = True) -> None:
        self.outputs = outputs
        self.ready = ready
        self.calls = 0

    async def get_usage(self) -> str:
        self.calls += 1
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output


@pytest.mark.asyncio
async def test_rate_limits_cached_within_ttl() -> None:
    now = [100.0]
    source = FakeUsageSource([USAGE_OUTPUT, USAGE_OUTPUT.replace("12%", "40%")])
    service = RateLimitService(source, ttl=30, clock=lambda: now[0])

    first = await service.get_cached_usage()
    again = await service.get_cached_usage()
    assert again is first
    assert source.calls == 1
    assert first.current_session is not None
    assert first.current_session.percent_used == 12

    now[0] += 31
    refreshed = await service.get_cached_usage()
    assert source.calls == 2
    assert refreshed.current_session is not None
    assert refreshed.current_session.percent_used == 40


@pytest.mark.asyncio
async def test_rate_limits_fall_back_to_stale_value() -> None:
    now = [0.0]
    source = FakeUsageSource([USAGE_OUTPUT, CommandTimeoutError("Command timeout: /usage")])
    service = RateLimitService(source, ttl=30, clock=lambda: now[0])

    cached = await service.get_cached_usage()
    now[0] += 60
    assert await service.get_cached_usage() is cached


@pytest.mark.asyncio
async def test_rate_limits_stale_value_survives_pty_errors() -> None:
    now = [0.0]
    source = FakeUsageSource([USAGE_OUTPUT, OSError(5, "Input/output error")])
    service = RateLimitService(source, ttl=30, clock=lambda: now[0])

    cached = await service.get_cached_usage()
    now[0] += 60
    assert await service.get_cached_usage() is cached
    assert source.calls == 2


@pytest.mark.asyncio
async def test_rate_limits_wrap_pty_errors_without_cache() -> None:
    service = RateLimitService(FakeUsageSource([OSError(5, "Input/output error")]))
    with pytest.raises(UsageTerminalError, match="Failed to read usage") as excinfo:
        await service.get_cached_usage()
    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_rate_limits_raise_without_cache() -> None:
    failing = RateLimitService(FakeUsageSource([CommandTimeoutError("Command timeout: /usage")]))
    with pytest.raises(CommandTimeoutError):
        await failing.get_cached_usage()

    not_ready = RateLimitService(FakeUsageSource([], ready=False))
    with pytest.raises(TerminalNotReadyError):
        await not_ready.get_cached_usage()


@pytest.mark.asyncio
async def test_background_refresh_updates_cache() -> None:
    source = FakeUsageSource([USAGE_OUTPUT] * 50)
    service = RateLimitService(source, refresh_interval=0.01)
    service.start()
    await asyncio.sleep(0.05)
    await service.close()

    assert source.calls >= 1
    assert service.cached is not None
