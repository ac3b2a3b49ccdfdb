"""Shell command execution tool.

In restricted mode the CommandRunner refuses dangerous commands and
shell injection; otherwise commands run through the user's shell.
"""

from typing import Any

from ..types import ToolName
from .base import BaseTool
from .security import CommandRunner


class ShellTool(BaseTool):
    """Execute shell commands in the session working directory.

    Restricted mode blocks:
    - Deletion: rm, rmdir, del, shred
    - Disk operations: mkfs, dd, fdisk, etc.
    - Privilege escalation: sudo, su, doas
    - System control: shutdown, reboot
    - Network downloads: curl, wget

    as well as shell operators like ;, &&, ||, |.
    """

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Execute command: '{command}'"
    OPERATION_TYPE = "execute"
    CONFIRMATION_CHECK_ARG = "command"

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    @property
    def tool_name(self) -> ToolName:
        return ToolName.PROCESS_SHELL

    @property
    def description(self) -> str:
        text = "Execute a shell command in the working directory and return its output."
        if self.runner.restricted:
            text += (
                " Restricted mode: some dangerous commands are blocked and shell "
                "operators (;, &&, |, etc.) are not supported."
            )
        return text

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The command to execute.",
                }
            },
            "required": ["command"],
        }

    async def execute(self, command: str) -> str:
        output = await self.runner.run(command)
        return output.render()
