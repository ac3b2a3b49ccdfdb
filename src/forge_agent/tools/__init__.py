"""Built-in tool catalog.

All tools inherit from BaseTool and implement the execute method.
There is exactly one tool per ``ToolName``.
"""

from .base import BaseTool, ToolContext
from .dispatch import EventDispatchTool
from .fetch import FetchTool
from .filesystem import (
    CreateFileTool,
    FileInfoTool,
    ListDirectoryTool,
    PatchFileTool,
    ReadFileTool,
    RemoveFileTool,
    SearchFilesTool,
)
from .security import CommandRunner, PathValidator
from .system import ShellTool
from .think import ThinkTool

__all__ = [
    "BaseTool",
    "ToolContext",
    "CommandRunner",
    "CreateFileTool",
    "EventDispatchTool",
    "FetchTool",
    "FileInfoTool",
    "ListDirectoryTool",
    "PatchFileTool",
    "PathValidator",
    "ReadFileTool",
    "RemoveFileTool",
    "SearchFilesTool",
    "ShellTool",
    "ThinkTool",
    "get_default_tools",
]


def get_default_tools(
    validator: PathValidator | None = None,
    runner: CommandRunner | None = None,
) -> list[BaseTool]:
    """Get one instance of every built-in tool.

    Args:
        validator: Path validator shared by the filesystem tools
        runner: Command runner for ``process_shell``
    """
    validator = validator or PathValidator()
    return [
        ReadFileTool(validator),
        CreateFileTool(validator),
        RemoveFileTool(validator),
        SearchFilesTool(validator),
        ListDirectoryTool(validator),
        FileInfoTool(validator),
        PatchFileTool(validator),
        ShellTool(runner or CommandRunner(cwd=validator.base)),
        ThinkTool(),
        FetchTool(),
        EventDispatchTool(),
    ]
