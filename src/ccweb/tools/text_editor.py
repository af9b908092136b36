"""File view/create/edit tool exposed to the Messages-API tool loop."""

from __future__ import annotations

from pathlib import Path
from typing import Any

TOOL_NAME = "str_replace_based_edit_tool"

TOOL_DEFINITION: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": (
        "A tool for viewing, creating, and editing files.\n\n"
        "Commands:\n"
        "- view: View file contents or list directory. Use view_range for specific lines.\n"
        "- create: Create a new file with the given content.\n"
        "- str_replace: Replace a unique string in a file. old_str must appear exactly once.\n"
        "- insert: Insert text at a specific line number."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "enum": ["view", "create", "str_replace", "insert"],
                "description": "The command to execute",
            },
            "path": {"type": "string", "description": "Absolute path to the file or directory"},
            "file_text": {"type": "string", "description": "Content for create command"},
            "old_str": {
                "type": "string",
                "description": "Text to find for str_replace (must be unique)",
            },
            "new_str": {
                "type": "string",
                "description": "Replacement text for str_replace or insert",
            },
            "insert_line": {
                "type": "number",
                "description": "Line number for insert command (1-indexed)",
            },
            "view_range": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Optional [start, end] line range for view",
            },
        },
        "required": ["command", "path"],
    },
}


def handle_text_editor(tool_input: dict[str, Any]) -> str:
    """Run one editor command and describe the outcome.

    Expected failures come back as ``Error: ...`` strings for the model to
    read; unexpected OS errors propagate to the caller.
    """
    raw_path = tool_input.get("path")
    if not isinstance(raw_path, str) or not raw_path:
        return "Error: path is required"
    path = Path(raw_path).expanduser().resolve()

    match tool_input.get("command"):
        case "view":
            return _view(path, tool_input.get("view_range"))
        case "create":
            return _create(path, tool_input.get("file_text"))
        case "str_replace":
            return _str_replace(path, tool_input.get("old_str"), tool_input.get("new_str"))
        case "insert":
            return _insert(path, tool_input.get("insert_line"), tool_input.get("new_str"))
        case command:
            return f"Error: Unknown command: {command}"


def _view(path: Path, view_range: object) -> str:
    if not path.exists():
        return f"Error: File or directory not found: {path}"

    if path.is_dir():
        listing = [
            ("[DIR]  " if entry.is_dir() else "[FILE] ") + entry.name
            for entry in sorted(path.iterdir(), key=lambda e: e.name)
        ]
        return f"Directory listing for {path}:\n" + "\n".join(listing)

    lines = path.read_text(encoding="utf-8").split("\n")
    start_idx = 0
    end_idx = len(lines)
    if isinstance(view_range, list | tuple) and len(view_range) == 2:
        start_idx = max(0, int(view_range[0]) - 1)
        end_idx = min(len(lines), int(view_range[1]))
    return "\n".join(f"{i + 1}\t{lines[i]}" for i in range(start_idx, end_idx))


def _create(path: Path, file_text: object) -> str:
    if not isinstance(file_text, str) or not file_text:
        return "Error: file_text is required for create command"
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        return f"Error: File already exists: {path}. Use str_replace to modify it."
    path.write_text(file_text, encoding="utf-8")
    return f"Successfully created {path}"


def _str_replace(path: Path, old_str: object, new_str: object) -> str:
    if not isinstance(old_str, str) or not isinstance(new_str, str):
        return "Error: old_str and new_str are required for str_replace command"
    if not path.is_file():
        return f"Error: File not found: {path}"

    content = path.read_text(encoding="utf-8")
    occurrences = content.count(old_str) if old_str else 0
    if occurrences == 0:
        return (
            "Error: old_str not found in file. "
            "Make sure the text matches exactly, including whitespace."
        )
    if occurrences > 1:
        return (
            f"Error: old_str appears {occurrences} times in file. "
            "It must be unique. Add more context to make it unique."
        )

    path.write_text(content.replace(old_str, new_str, 1), encoding="utf-8")
    return f"Successfully replaced text in {path}"


def _insert(path: Path, insert_line: object, new_str: object) -> str:
    if not isinstance(insert_line, int | float) or not isinstance(new_str, str):
        return "Error: insert_line and new_str are required for insert command"
    if not path.is_file():
        return f"Error: File not found: {path}"

    lines = path.read_text(encoding="utf-8").split("\n")
    index = max(0, min(len(lines), int(insert_line) - 1))
    lines.insert(index, new_str)
    path.write_text("\n".join(lines), encoding="utf-8")
    return f"Successfully inserted text at line {int(insert_line)} in {path}"
