"""Session-wide ACT/PLAN gate over tool availability."""

from typing import Iterable

from .exceptions import ToolNotAvailableError
from .logging import get_logger
from .types import READ_ONLY_TOOLS, Mode, ToolName

logger = get_logger(__name__)

MODE_COMMANDS = {
    "/act": Mode.ACT,
    "/plan": Mode.PLAN,
}


class ModeController:
    """Holds the current mode and the tool restriction it implies.

    The mode starts at ``ACT`` and changes only through ``switch`` (or the
    ``/act`` and ``/plan`` commands).
    """

    def __init__(self):
        self._mode = Mode.ACT

    @property
    def mode(self) -> Mode:
        return self._mode

    def switch(self, mode: Mode) -> bool:
        """Set the mode; returns whether it changed."""
        if mode == self._mode:
            return False
        logger.info(f"Mode switched {self._mode.value} -> {mode.value}")
        self._mode = mode
        return True

    def handle_command(self, text: str) -> Mode | None:
        """Apply ``/act`` or ``/plan``; any other text leaves the mode alone."""
        mode = MODE_COMMANDS.get(text.strip().lower())
        if mode is None:
            return None
        self.switch(mode)
        return mode

    def permits(self, tool: ToolName) -> bool:
        return self._mode == Mode.ACT or tool in READ_ONLY_TOOLS

    def effective_tools(self, allowed: Iterable[ToolName]) -> list[ToolName]:
        """Filter an agent's allow-list by the current mode, keeping catalog order."""
        allowed = set(allowed)
        return [name for name in ToolName if name in allowed and self.permits(name)]

    def check(self, tool: ToolName) -> None:
        """Raise if the current mode forbids the tool.

        Raises:
            ToolNotAvailableError: The tool mutates state and the mode is PLAN.
        """
        if not self.permits(tool):
            raise ToolNotAvailableError(
                tool.wire_name,
                "the session is in PLAN mode, which only allows read-only tools "
                f"({', '.join(sorted(t.wire_name for t in READ_ONLY_TOOLS))}). "
                "Describe the change instead, or ask the user to switch to /act.",
            )
