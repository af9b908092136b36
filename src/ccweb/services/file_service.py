"""File service: directory trees, path validation and bounded file reads."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from datetime import UTC, datetime
from pathlib import Path

from result import Err, Ok, Result

from ccweb.errors import ServiceError
from ccweb.models.files import FileReadResponse, PathValidation, TreeNode
from ccweb.timeutil import format_iso

logger = logging.getLogger(__name__)

MAX_READ_SIZE = 1024 * 1024
ALLOWED_DOTFILES = frozenset({".env.example"})
SKIP_DIRECTORIES = frozenset(
    {
        "node_modules",
        "dist",
        "build",
        "__pycache__",
        ".git",
        "Library",
        "Photos Library.photoslibrary",
        "Photo Booth Library",
        ".Trash",
        "Applications",
    }
)


def resolve_path(raw: str) -> Path:
    """Expand ``~`` and make the path absolute."""
    return Path(raw).expanduser().resolve()


def build_directory_tree(
    root: str | Path, max_depth: int = 3, _depth: int = 0, _base: str = ""
) -> list[TreeNode]:
    """Walk ``root`` into TreeNodes, folders first, skipping noise directories.

    Folders at the depth limit get an empty ``children`` list so the UI can
    offer to expand them.
    """
    absolute = resolve_path(str(root))
    try:
        with os.scandir(absolute) as it:
            entries = [(entry.name, entry.is_dir(follow_symlinks=False)) for entry in it]
    except PermissionError:
        return []
    except OSError:
        logger.exception("Error reading directory %s", absolute)
        return []

    entries.sort(key=lambda e: (not e[1], e[0].lower(), e[0]))
    nodes: list[TreeNode] = []
    for name, is_dir in entries:
        if name.startswith(".") and name not in ALLOWED_DOTFILES:
            continue
        if name in SKIP_DIRECTORIES:
            continue

        relative = f"{_base}/{name}"
        children: list[TreeNode] | None = None
        if is_dir:
            children = (
                build_directory_tree(absolute / name, max_depth, _depth + 1, relative)
                if _depth < max_depth
                else []
            )
        nodes.append(
            TreeNode(
                id=str(uuid.uuid4()),
                name=name,
                type="folder" if is_dir else "file",
                path=relative,
                children=children,
            )
        )
    return nodes


def validate_path(raw: str) -> PathValidation:
    absolute = resolve_path(raw)
    try:
        absolute.stat()
    except OSError as e:
        return PathValidation(valid=False, absolute_path="", error=str(e))
    return PathValidation(valid=True, absolute_path=str(absolute))


class FileService:
    """Filesystem browsing for the directory view."""

    def __init__(self, default_root: str, max_depth: int = 5) -> None:
        self._default_root = default_root
        self._max_depth = max_depth

    async def get_tree(
        self, path: str | None = None, depth: int | None = None
    ) -> Result[tuple[str, list[TreeNode]], ServiceError]:
        """Validate ``path`` and walk it off the event loop.

        Returns:
            Ok with (absolute_path, tree) or Err when the path is invalid.
        """
        validation = validate_path(path or self._default_root)
        if not validation.valid:
            return Err(ServiceError.validation(validation.error or "", error="Invalid path"))
        tree = await asyncio.to_thread(
            build_directory_tree, validation.absolute_path, depth or self._max_depth
        )
        return Ok((validation.absolute_path, tree))

    def validate(self, path: str) -> PathValidation:
        return validate_path(path)

    async def read_file(self, path: str) -> Result[FileReadResponse, ServiceError]:
        return await asyncio.to_thread(_read_file, path)


def _read_file(path: str) -> Result[FileReadResponse, ServiceError]:
    absolute = resolve_path(path)
    try:
        stat = absolute.stat()
    except FileNotFoundError:
        return Err(ServiceError.not_found(f"File not found: {absolute}"))
    except OSError as e:
        return Err(ServiceError.upstream(str(e), error="Failed to read file"))

    if absolute.is_dir():
        return Err(ServiceError.validation("Path is a directory, not a file"))
    if stat.st_size > MAX_READ_SIZE:
        return Err(ServiceError.validation("File too large (max 1MB)"))

    try:
        content = absolute.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return Err(ServiceError.upstream(str(e), error="Failed to read file"))

    return Ok(
        FileReadResponse(
            content=content,
            size=stat.st_size,
            modified=format_iso(datetime.fromtimestamp(stat.st_mtime, tz=UTC)),
            path=str(absolute),
        )
    )
