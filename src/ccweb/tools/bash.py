"""Shell command tool exposed to the Messages-API tool loop."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TOOL_NAME = "bash"
COMMAND_TIMEOUT = 30.0
MAX_OUTPUT_SIZE = 100 * 1024
TRUNCATED_MARKER = "\n[Output truncated - exceeded maximum size]"

TOOL_DEFINITION: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": (
        "Execute shell commands. Use this for running scripts, installing packages, "
        "git operations, etc.\n\n"
        "The command runs in a bash shell with the working directory set to the project root."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The shell command to execute"},
            "restart": {
                "type": "boolean",
                "description": "Set to true to restart the bash session",
            },
        },
        "required": ["command"],
    },
}


async def handle_bash(
    tool_input: dict[str, Any],
    working_directory: str,
    *,
    timeout: float = COMMAND_TIMEOUT,
    max_output: int = MAX_OUTPUT_SIZE,
) -> str:
    """Run ``/bin/bash -c <command>`` and format stdout, stderr and exit code."""
    if tool_input.get("restart"):
        return "Bash session restarted."
    command = tool_input.get("command")
    if not isinstance(command, str) or not command:
        return "Error: command is required"

    cwd = Path(working_directory).expanduser()
    try:
        proc = await asyncio.create_subprocess_exec(
            "/bin/bash",
            "-c",
            command,
            cwd=cwd,
            env={**os.environ, "TERM": "xterm-256color"},
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return f"Error executing command: {e}"

    stdout_parts: list[str] = []
    stderr_parts: list[str] = []
    truncated = False

    async def _read_stdout() -> None:
        nonlocal truncated
        assert proc.stdout is not None
        decoder = _utf8_decoder()
        size = 0
        while True:
            chunk = await proc.stdout.read(4096)
            text = decoder.decode(chunk, final=not chunk)
            if truncated or not text:
                pass
            elif size + len(text) <= max_output:
                stdout_parts.append(text)
                size += len(text)
            else:
                truncated = True
                stdout_parts.append(TRUNCATED_MARKER)
                proc.kill()
            if not chunk:
                break

    async def _read_stderr() -> None:
        assert proc.stderr is not None
        decoder = _utf8_decoder()
        size = 0
        while True:
            chunk = await proc.stderr.read(4096)
            text = decoder.decode(chunk, final=not chunk)
            if size + len(text) <= max_output:
                stderr_parts.append(text)
                size += len(text)
            if not chunk:
                break

    try:
        async with asyncio.timeout(timeout):
            await asyncio.gather(_read_stdout(), _read_stderr())
            code = await proc.wait()
    except TimeoutError:
        proc.kill()
        await proc.wait()
        logger.info("bash tool command timed out: %s", command)
        return f"Command timed out after {timeout:g} seconds"

    exit_code = None if truncated or code < 0 else code
    return format_output("".join(stdout_parts), "".join(stderr_parts), exit_code)


def _utf8_decoder() -> codecs.IncrementalDecoder:
    # Multi-byte characters may straddle pipe reads.
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


def format_output(stdout: str, stderr: str, code: int | None) -> str:
    output = ""
    if stdout.strip():
        output += stdout
    if stderr.strip():
        if output:
            output += "\n"
        output += f"STDERR:\n{stderr}"
    if code not in (0, None):
        if output:
            output += "\n"
        output += f"Exit code: {code}"
    return output or "(no output)"
