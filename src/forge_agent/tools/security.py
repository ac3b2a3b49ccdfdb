"""Security utilities for tool execution.

This module provides security primitives for safe file and command operations:
- PathValidator: Keeps file operations inside the allowed roots
- CommandRunner: Runs shell commands, refusing dangerous ones in restricted mode
"""

import asyncio
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import DisallowedCommandError, PathTraversalError
from ..logging import get_logger

logger = get_logger(__name__)


class PathValidator:
    """Validates file paths to prevent directory traversal attacks.

    Relative paths are resolved against the first allowed root, not the
    process working directory.

    Example:
        validator = PathValidator(["/home/user/project"])
        safe_path = validator.validate("./src/main.py")  # OK
        validator.validate("../../etc/passwd")  # Raises PathTraversalError
    """

    def __init__(self, allowed_roots: list[str | Path] | None = None):
        """Initialize with allowed root directories.

        Args:
            allowed_roots: List of allowed root directories.
                          Defaults to current working directory.
        """
        if allowed_roots:
            self.allowed_roots = [Path(root).resolve() for root in allowed_roots]
        else:
            self.allowed_roots = [Path.cwd().resolve()]

    @property
    def base(self) -> Path:
        return self.allowed_roots[0]

    def validate(self, path: str | Path) -> Path:
        """Validate and resolve a path.

        Args:
            path: The path to validate (can be relative or absolute)

        Returns:
            Resolved absolute Path object

        Raises:
            PathTraversalError: If path escapes allowed roots
        """
        candidate = Path(os.path.expanduser(str(path)))
        if not candidate.is_absolute():
            candidate = self.base / candidate
        resolved = candidate.resolve()

        for root in self.allowed_roots:
            if resolved == root or root in resolved.parents:
                return resolved

        raise PathTraversalError(
            attempted_path=str(resolved),
            allowed_base=str(self.base),
        )

    def add_allowed_root(self, root: str | Path) -> None:
        self.allowed_roots.append(Path(root).resolve())

    def is_valid(self, path: str | Path) -> bool:
        """Check if a path is valid without raising an exception."""
        try:
            self.validate(path)
            return True
        except PathTraversalError:
            return False


@dataclass
class CommandOutput:
    """Captured result of a shell command."""
    stdout: str
    stderr: str
    exit_code: int

    def render(self) -> str:
        output = self.stdout
        if self.stderr:
            output += f"\nError Output:\n{self.stderr}"
        if self.exit_code != 0:
            output += f"\n(Exit code: {self.exit_code})"
        return output if output.strip() else "(No output)"


class CommandRunner:
    """Asynchronous command execution with an optional restricted mode.

    Unrestricted, commands go through the user's shell. Restricted
    (the ``-r`` flag), the runner:
    - Blocks dangerous commands (rm, sudo, etc.)
    - Rejects shell metacharacters used for chaining or redirection
    - Runs the parsed argv directly, without a shell

    Both modes enforce a timeout and kill the child process if the
    awaiting task is cancelled.

    Example:
        runner = CommandRunner(restricted=True, timeout=30)
        output = await runner.run("ls -la")
        # await runner.run("rm -rf /")  # Raises DisallowedCommandError
    """

    # Commands that are always blocked in restricted mode
    DEFAULT_BLOCKED_COMMANDS = {
        # Deletion commands
        "rm", "rmdir", "del", "shred",
        # Disk operations
        "mkfs", "dd", "fdisk", "parted", "mount", "umount",
        # Permission/ownership changes
        "chmod", "chown", "chgrp",
        # Privilege escalation
        "sudo", "su", "doas", "pkexec",
        # System control
        "shutdown", "reboot", "init", "systemctl",
        # Network downloads
        "curl", "wget",
    }

    # Patterns that indicate shell injection attempts
    INJECTION_PATTERNS = [
        ";",    # Command separator
        "&&",   # AND chain
        "||",   # OR chain
        "|",    # Pipe
        "`",    # Command substitution
        "$(",   # Command substitution
        ">",    # Output redirect
        "<",    # Input redirect
        "\n",   # Newline
        "\r",   # Carriage return
    ]

    def __init__(
        self,
        restricted: bool = False,
        timeout: float = 60,
        cwd: str | Path | None = None,
        additional_blocked: set[str] | None = None,
    ):
        """Initialize the command runner.

        Args:
            restricted: Refuse blocked commands and shell metacharacters
            timeout: Maximum execution time in seconds
            cwd: Working directory for commands (defaults to process cwd)
            additional_blocked: Extra commands to block in restricted mode
        """
        self.restricted = restricted
        self.timeout = timeout
        self.cwd = str(cwd) if cwd is not None else None
        self.blocked = self.DEFAULT_BLOCKED_COMMANDS.copy()
        if additional_blocked:
            self.blocked.update(additional_blocked)

    def _check_injection(self, command: str) -> None:
        for pattern in self.INJECTION_PATTERNS:
            if pattern in command:
                raise DisallowedCommandError(
                    command=command,
                    reason=f"Contains disallowed pattern: '{pattern}'"
                )

    def _parse_command(self, command: str) -> list[str]:
        try:
            return shlex.split(command)
        except ValueError as e:
            raise DisallowedCommandError(
                command=command,
                reason=f"Failed to parse command: {e}"
            )

    def _check_base_command(self, parts: list[str]) -> None:
        if not parts:
            raise DisallowedCommandError(command="", reason="Empty command")

        base_cmd = os.path.basename(parts[0])
        if base_cmd in self.blocked:
            raise DisallowedCommandError(
                command=parts[0],
                reason=f"Command '{base_cmd}' is blocked in restricted mode"
            )

    def check(self, command: str) -> list[str] | None:
        """Validate a command for the current mode.

        Returns:
            The parsed argv in restricted mode, None otherwise

        Raises:
            DisallowedCommandError: If the command is refused
        """
        if not command.strip():
            raise DisallowedCommandError(command="", reason="Empty command")
        if not self.restricted:
            return None
        self._check_injection(command)
        parts = self._parse_command(command)
        self._check_base_command(parts)
        return parts

    def is_command_allowed(self, command: str) -> bool:
        try:
            self.check(command)
            return True
        except DisallowedCommandError:
            return False

    async def run(self, command: str) -> CommandOutput:
        """Execute a command.

        Args:
            command: The command to execute

        Returns:
            Captured stdout, stderr and exit code

        Raises:
            DisallowedCommandError: If the command is refused
        """
        argv = self.check(command)

        try:
            if argv is not None:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self.cwd,
                )
            else:
                process = await asyncio.create_subprocess_shell(
                    command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self.cwd,
                )
        except FileNotFoundError:
            return CommandOutput("", f"Command not found: {command.split()[0]}", 127)
        except PermissionError:
            return CommandOutput("", f"Permission denied: {command.split()[0]}", 126)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandOutput("", f"Command timed out after {self.timeout}s", -1)
        except asyncio.CancelledError:
            logger.debug("Killing interrupted command: %s", command)
            process.kill()
            raise

        return CommandOutput(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
