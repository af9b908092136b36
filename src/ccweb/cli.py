"""Typer CLI for ccweb: starts the API server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from ccweb.config import Config

app = typer.Typer(
    name="ccweb",
    help="Web backend for the coding-agent dashboard.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option("--host", help="Interface to bind")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Port to listen on")] = None,
    claude_dir: Annotated[
        Path | None,
        typer.Option("--claude-dir", help="Path to Claude data directory"),
    ] = None,
) -> None:
    """Start the HTTP, SSE and WebSocket server."""
    if ctx.invoked_subcommand is not None:
        return
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    config = Config.from_env(host=host, port=port, claude_dir=claude_dir)

    from ccweb.api.app import create_app

    typer.echo(f"Backend server running at http://{config.host}:{config.port}")
    typer.echo(f"WebSocket terminal available at ws://{config.host}:{config.port}/terminal")
    typer.echo(f"CORS enabled for: {', '.join(config.cors_origins)}")
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level="info")
