"""Tests for directory trees, path validation and file reads."""

from __future__ import annotations

from pathlib import Path

import pytest
from result import Err, Ok

from ccweb.errors import ErrorKind
from ccweb.services.file_service import FileService, build_directory_tree, validate_path


def _make_project(root: Path) -> Path:
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "src" / "pkg" / "mod.py").write_text("x = 1\n")
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / ".env").write_text("SECRET=1")
    (root / ".env.example").write_text("SECRET=")
    (root / "README.md").write_text("# hi")
    (root / "b.txt").write_text("b")
    (root / "Docs").mkdir()
    return root


def test_tree_orders_and_filters(tmp_path: Path) -> None:
    root = _make_project(tmp_path)
    tree = build_directory_tree(root)

    assert [(n.name, n.type) for n in tree] == [
        ("Docs", "folder"),
        ("src", "folder"),
        (".env.example", "file"),
        ("b.txt", "file"),
        ("README.md", "file"),
    ]
    src = tree[1]
    assert src.path == "/src"
    assert src.children is not None
    pkg = src.children[0]
    assert pkg.path == "/src/pkg"
    assert pkg.children is not None
    assert pkg.children[0].path == "/src/pkg/mod.py"
    assert pkg.children[0].children is None
    assert len({n.id for n in tree}) == len(tree)


def test_tree_depth_limit_leaves_empty_children(tmp_path: Path) -> None:
    root = _make_project(tmp_path)
    tree = build_directory_tree(root, max_depth=0)
    src = next(n for n in tree if n.name == "src")
    assert src.children == []


def test_tree_of_missing_directory_is_empty(tmp_path: Path) -> None:
    assert build_directory_tree(tmp_path / "missing") == []


def test_validate_path(tmp_path: Path) -> None:
    ok = validate_path(str(tmp_path))
    assert ok.valid is True
    assert ok.absolute_path == str(tmp_path.resolve())
    assert ok.error is None

    bad = validate_path(str(tmp_path / "missing"))
    assert bad.valid is False
    assert bad.absolute_path == ""
    assert bad.error


def test_validate_expands_home() -> None:
    result = validate_path("~")
    assert result.valid is True
    assert result.absolute_path == str(Path.home().resolve())


@pytest.mark.asyncio
async def test_get_tree_defaults_and_errors(tmp_path: Path) -> None:
    root = _make_project(tmp_path)
    service = FileService(str(root), max_depth=5)

    result = await service.get_tree()
    assert isinstance(result, Ok)
    absolute, tree = result.ok_value
    assert absolute == str(root.resolve())
    assert any(n.name == "src" for n in tree)

    missing = await service.get_tree(str(tmp_path / "missing"))
    assert isinstance(missing, Err)
    assert missing.err_value.kind is ErrorKind.VALIDATION
    assert missing.err_value.error == "Invalid path"


@pytest.mark.asyncio
async def test_read_file(tmp_path: Path) -> None:
    target = tmp_path / "notes.txt"
    target.write_bytes(b"hello \xff world")
    service = FileService(str(tmp_path))

    result = await service.read_file(str(target))
    assert isinstance(result, Ok)
    response = result.ok_value
    assert response.content == "hello � world"
    assert response.size == 13
    assert response.path == str(target.resolve())
    assert response.modified.endswith("Z")


@pytest.mark.asyncio
async def test_read_file_errors(tmp_path: Path) -> None:
    service = FileService(str(tmp_path))

    missing = await service.read_file(str(tmp_path / "missing.txt"))
    assert isinstance(missing, Err)
    assert missing.err_value.kind is ErrorKind.NOT_FOUND

    directory = await service.read_file(str(tmp_path))
    assert isinstance(directory, Err)
    assert directory.err_value.message == "Path is a directory, not a file"

    big = tmp_path / "big.bin"
    big.write_bytes(b"0" * (1024 * 1024 + 1))
    too_large = await service.read_file(str(big))
    assert isinstance(too_large, Err)
    assert too_large.err_value.message == "File too large (max 1MB)"
    assert too_large.err_value.status_code == 400
