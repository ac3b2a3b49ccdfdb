"""Filesystem tools with path validation security.

All filesystem operations are validated against allowed root directories
to prevent path traversal attacks. Parameters may arrive as strings from
tagged-text calls, so numeric and boolean arguments are coerced.
"""

import fnmatch
import os
import re
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..exceptions import ToolExecutionError
from ..types import ToolName
from .base import BaseTool
from .security import PathValidator

MAX_SEARCH_MATCHES = 200
MAX_LIST_ENTRIES = 1000


def as_bool(value: Any) -> bool:
    """Coerce a tool argument to bool (``"true"``, ``"1"``, ``"yes"`` are truthy)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes", "y")


class FilesystemTool(BaseTool):
    """Base for tools that resolve paths through a shared ``PathValidator``."""

    def __init__(self, validator: PathValidator | None = None):
        self.validator = validator or PathValidator()

    def resolve(self, path: str) -> Path:
        return self.validator.validate(path)

    def display(self, path: Path) -> str:
        """Path relative to the validator base, for readable output."""
        try:
            return str(path.relative_to(self.validator.base)) or "."
        except ValueError:
            return str(path)


class ReadFileTool(FilesystemTool):
    """Read file contents with path validation."""

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_READ

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file at the specified path. Use this to examine "
            "code, configuration or other text files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The path of the file to read (relative to the working directory).",
                }
            },
            "required": ["path"],
        }

    def execute(self, path: str) -> str:
        validated_path = self.resolve(path)
        if not validated_path.is_file():
            raise ToolExecutionError(self.tool_name.value, f"File not found: {path}")
        try:
            return validated_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise ToolExecutionError(self.tool_name.value, f"File is not a text file: {path}")


class CreateFileTool(FilesystemTool):
    """Create (or overwrite) a file with path validation."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Write {len_content} characters to '{path}'"
    OPERATION_TYPE = "write"

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_CREATE

    @property
    def description(self) -> str:
        return (
            "Create a new file with the provided content. Missing parent directories "
            "are created. Fails if the file exists unless overwrite is true. Always "
            "provide the complete intended content of the file."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The path of the file to write.",
                },
                "content": {
                    "type": "string",
                    "description": "The full content to write to the file.",
                },
                "overwrite": {
                    "type": "string",
                    "description": "Set to 'true' to replace an existing file. Defaults to false.",
                },
            },
            "required": ["path", "content"],
        }

    def execute(self, path: str, content: str, overwrite: Any = False) -> str:
        validated_path = self.resolve(path)
        if validated_path.exists() and not as_bool(overwrite):
            raise ToolExecutionError(
                self.tool_name.value,
                f"File already exists: {path}. Set overwrite to true to replace it.",
            )
        if validated_path.is_dir():
            raise ToolExecutionError(self.tool_name.value, f"Path is a directory: {path}")

        validated_path.parent.mkdir(parents=True, exist_ok=True)
        validated_path.write_text(content, encoding="utf-8")
        return f"Successfully wrote {len(content)} characters to {path}"


class RemoveFileTool(FilesystemTool):
    """Remove a single file."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Remove file '{path}'"
    OPERATION_TYPE = "remove"

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_REMOVE

    @property
    def description(self) -> str:
        return "Remove a file at the specified path. Directories are not removed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The path of the file to remove.",
                }
            },
            "required": ["path"],
        }

    def execute(self, path: str) -> str:
        validated_path = self.resolve(path)
        if validated_path.is_dir():
            raise ToolExecutionError(self.tool_name.value, f"Refusing to remove directory: {path}")
        if not validated_path.exists():
            raise ToolExecutionError(self.tool_name.value, f"File not found: {path}")
        validated_path.unlink()
        return f"Successfully removed {path}"


class SearchFilesTool(FilesystemTool):
    """Regex search across files under a directory."""

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_SEARCH

    @property
    def description(self) -> str:
        return (
            "Search recursively for a regular expression in files under a directory. "
            "Each match is reported as path:line:text. Matching is case-insensitive."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The directory to search in. It is searched recursively.",
                },
                "regex": {
                    "type": "string",
                    "description": "The regular expression to search for.",
                },
                "file_pattern": {
                    "type": "string",
                    "description": "Glob filtering file names, e.g. '*.py'. Defaults to all files.",
                },
            },
            "required": ["path", "regex"],
        }

    def execute(self, path: str, regex: str, file_pattern: str | None = None) -> str:
        root = self.resolve(path)
        if not root.is_dir():
            raise ToolExecutionError(self.tool_name.value, f"Directory does not exist: {path}")
        try:
            pattern = re.compile(regex or ".*", re.IGNORECASE)
        except re.error as e:
            raise ToolExecutionError(self.tool_name.value, f"Invalid regex '{regex}': {e}")

        matches: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if file_pattern and not fnmatch.fnmatch(filename, file_pattern):
                    continue
                file_path = Path(dirpath) / filename
                try:
                    with open(file_path, "r", encoding="utf-8") as f:
                        for line_no, line in enumerate(f, start=1):
                            if pattern.search(line):
                                matches.append(f"{self.display(file_path)}:{line_no}:{line.rstrip()}")
                                if len(matches) >= MAX_SEARCH_MATCHES:
                                    matches.append(f"(stopped after {MAX_SEARCH_MATCHES} matches)")
                                    return "\n".join(matches)
                except (UnicodeDecodeError, OSError):
                    continue

        if not matches:
            return f"No matches found for '{regex}' in {path}"
        return "\n".join(matches)


class ListDirectoryTool(FilesystemTool):
    """List contents of a directory with path validation."""

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_LIST

    @property
    def description(self) -> str:
        return (
            "List files and directories at the given path. Directories end with '/'. "
            "Set recursive to true to list nested contents."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The directory to list. Defaults to the working directory.",
                },
                "recursive": {
                    "type": "string",
                    "description": "Set to 'true' to list recursively.",
                },
            },
            "required": [],
        }

    def execute(self, path: str = ".", recursive: Any = False) -> str:
        root = self.resolve(path)
        if not root.is_dir():
            raise ToolExecutionError(self.tool_name.value, f"Directory not found: {path}")

        entries: list[str] = []
        if as_bool(recursive):
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
                base = Path(dirpath)
                for d in dirnames:
                    entries.append(f"{self.display(base / d)}/")
                for f in sorted(filenames):
                    entries.append(self.display(base / f))
                if len(entries) >= MAX_LIST_ENTRIES:
                    break
        else:
            for child in sorted(root.iterdir()):
                entries.append(f"{child.name}/" if child.is_dir() else child.name)

        if not entries:
            return f"{path} is empty"
        if len(entries) > MAX_LIST_ENTRIES:
            entries = entries[:MAX_LIST_ENTRIES] + [f"(truncated at {MAX_LIST_ENTRIES} entries)"]
        return "\n".join(entries)


class FileInfoTool(FilesystemTool):
    """Report metadata about a file or directory."""

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_INFO

    @property
    def description(self) -> str:
        return (
            "Retrieve metadata about a file or directory: type, size, permissions "
            "and modification time, without reading the content."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The path of the file or directory to inspect.",
                }
            },
            "required": ["path"],
        }

    def execute(self, path: str) -> str:
        validated_path = self.resolve(path)
        if not validated_path.exists():
            raise ToolExecutionError(self.tool_name.value, f"Path not found: {path}")
        info = validated_path.stat()
        kind = "directory" if validated_path.is_dir() else "file"
        modified = datetime.fromtimestamp(info.st_mtime, tz=timezone.utc).isoformat()
        return "\n".join([
            f"path: {self.display(validated_path)}",
            f"type: {kind}",
            f"size: {info.st_size} bytes",
            f"permissions: {stat.filemode(info.st_mode)}",
            f"modified: {modified}",
        ])


class PatchFileTool(FilesystemTool):
    """Replace exactly one occurrence of a search block in a file."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Patch '{path}'"
    OPERATION_TYPE = "write"

    @property
    def tool_name(self) -> ToolName:
        return ToolName.FS_PATCH

    @property
    def description(self) -> str:
        return (
            "Modify a file by replacing one exact occurrence of a search block with new "
            "content. The search block must appear exactly once in the file."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "The path of the file to modify.",
                },
                "search": {
                    "type": "string",
                    "description": "The exact text to replace.",
                },
                "content": {
                    "type": "string",
                    "description": "The replacement text.",
                },
            },
            "required": ["path", "search", "content"],
        }

    def execute(self, path: str, search: str, content: str) -> str:
        validated_path = self.resolve(path)
        if not validated_path.is_file():
            raise ToolExecutionError(self.tool_name.value, f"File not found: {path}")
        if not search:
            raise ToolExecutionError(self.tool_name.value, "Search block must not be empty")

        original = validated_path.read_text(encoding="utf-8")
        occurrences = original.count(search)
        if occurrences == 0:
            raise ToolExecutionError(self.tool_name.value, f"Search block not found in {path}")
        if occurrences > 1:
            raise ToolExecutionError(
                self.tool_name.value,
                f"Search block matches {occurrences} times in {path}; make it unique",
            )

        validated_path.write_text(original.replace(search, content, 1), encoding="utf-8")
        return f"Successfully patched {path}"
