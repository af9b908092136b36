"""Filesystem browser models."""

from __future__ import annotations

from typing import Literal

from ccweb.models.base import CamelModel


class TreeNode(CamelModel):
    id: str
    name: str
    type: Literal["folder", "file"]
    path: str
    children: list[TreeNode] | None = None


class FileReadResponse(CamelModel):
    content: str
    size: int
    modified: str
    path: str


class PathValidation(CamelModel):
    valid: bool
    absolute_path: str
    error: str | None = None


class DirectoryTree(CamelModel):
    path: str
    tree: list[TreeNode]
