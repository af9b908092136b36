"""Configuration for ccweb."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

AGENT_BACKENDS = ("sdk", "messages")


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    claude_dir: Path = field(default_factory=lambda: Path.home() / ".claude")
    storage_dir: Path = field(default_factory=lambda: Path.home() / ".claude-web")
    port: int = 3001
    host: str = "127.0.0.1"
    anthropic_api_key: str = ""
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    default_working_dir: str = field(default_factory=os.getcwd)
    max_tree_depth: int = 5
    agent_backend: str = "sdk"
    model: str = "claude-sonnet-4-5"
    claude_command: str = "claude"
    usage_terminal_enabled: bool = True
    usage_refresh_interval: float = 60.0

    @property
    def projects_dir(self) -> Path:
        return self.claude_dir / "projects"

    @property
    def stats_cache_path(self) -> Path:
        return self.claude_dir / "stats-cache.json"

    @property
    def sessions_file(self) -> Path:
        return self.storage_dir / "sessions.json"

    @property
    def agent_available(self) -> bool:
        return bool(self.anthropic_api_key)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> Config:
        """Build a Config from environment variables, then apply explicit overrides."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if env.get("PORT"):
            values["port"] = _env_int(env["PORT"], 3001)
        if env.get("HOST"):
            values["host"] = env["HOST"]
        if env.get("ANTHROPIC_API_KEY"):
            values["anthropic_api_key"] = env["ANTHROPIC_API_KEY"]
        if env.get("CORS_ORIGINS"):
            origins = [o.strip() for o in env["CORS_ORIGINS"].split(",") if o.strip()]
            values["cors_origins"] = tuple(origins)
        if env.get("DEFAULT_WORKING_DIR"):
            values["default_working_dir"] = env["DEFAULT_WORKING_DIR"]
        if env.get("MAX_TREE_DEPTH"):
            values["max_tree_depth"] = _env_int(env["MAX_TREE_DEPTH"], 5)
        if env.get("CCWEB_AGENT_BACKEND"):
            values["agent_backend"] = env["CCWEB_AGENT_BACKEND"].strip().lower()
        if env.get("CCWEB_MODEL"):
            values["model"] = env["CCWEB_MODEL"]
        if env.get("CCWEB_CLAUDE_DIR"):
            values["claude_dir"] = Path(env["CCWEB_CLAUDE_DIR"]).expanduser()
        if env.get("CCWEB_STORAGE_DIR"):
            values["storage_dir"] = Path(env["CCWEB_STORAGE_DIR"]).expanduser()
        if env.get("CCWEB_USAGE_TERMINAL"):
            values["usage_terminal_enabled"] = env["CCWEB_USAGE_TERMINAL"].strip().lower() not in {
                "0",
                "false",
                "no",
                "off",
            }

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]

    def validate(self) -> None:
        """Log configuration problems that disable features without stopping the server."""
        if not self.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY is not set. Agent features will not work.")
        if self.agent_backend not in AGENT_BACKENDS:
            logger.warning(
                "Unknown agent backend %r, falling back to 'sdk'", self.agent_backend
            )


def _env_int(raw: str, default: int) -> int:
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer config value %r", raw)
        return default
