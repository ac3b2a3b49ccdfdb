from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..types import ToolName


@dataclass(frozen=True)
class ToolContext:
    """Per-call information handed to tools that set ``NEEDS_CONTEXT``.

    Attributes:
        agent_id: Id of the agent issuing the call
        depth: Dispatch depth of the event driving the current turn
        dispatch: Coroutine publishing an agent-originated event,
            ``dispatch(name, value, parent_depth, source) -> int``
        thoughts: The calling instance's scratchpad for ``think``
    """
    agent_id: str
    depth: int = 0
    dispatch: Callable[[str, str, int, str], Awaitable[int]] | None = None
    thoughts: list[str] | None = None


class BaseTool(ABC):
    """Abstract base class for all built-in tools.

    Tools that mutate the filesystem or run commands set
    REQUIRES_CONFIRMATION = True and provide a CONFIRMATION_MESSAGE template.
    ``execute`` may be a plain method or a coroutine; failures are raised,
    the executor turns them into error results.
    """

    # confirmation configuration - override in subclasses for dangerous tools
    REQUIRES_CONFIRMATION: bool = False
    CONFIRMATION_MESSAGE: str = ""
    OPERATION_TYPE: str = ""  # e.g., "write", "remove", "execute"
    CONFIRMATION_CHECK_ARG: str = "path"  # argument name used for auto-approve pattern matching

    # tools that need the calling agent's identity receive ``context=``
    NEEDS_CONTEXT: bool = False

    @property
    @abstractmethod
    def tool_name(self) -> ToolName:
        """Return the catalog entry this tool implements."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Return the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Return the JSON schema for tool parameters."""
        pass

    @abstractmethod
    def execute(self, **kwargs) -> Any:
        """Execute the tool with the given arguments."""
        pass

    @property
    def name(self) -> str:
        """Wire name, e.g. ``tool_forge_fs_read``."""
        return self.tool_name.wire_name

    @property
    def required_parameters(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def get_confirmation_message(self, **kwargs) -> str:
        """Format the confirmation message with the given arguments.

        Args:
            **kwargs: The arguments that will be passed to execute()

        Returns:
            Formatted confirmation message
        """
        if not self.CONFIRMATION_MESSAGE:
            return f"Execute {self.name} with args: {kwargs}"

        try:
            format_args = dict(kwargs)
            if "content" in kwargs:
                format_args["len_content"] = len(kwargs["content"])
            return self.CONFIRMATION_MESSAGE.format(**format_args)
        except KeyError:
            # fallback if template has missing keys
            return f"Execute {self.name} with args: {kwargs}"

    def usage_prompt(self) -> str:
        """Describe the tool for prompts, including a tagged-text example."""
        properties = self.parameters.get("properties", {})
        required = set(self.required_parameters)
        lines = [f"{self.name}: {self.description}"]
        if properties:
            lines.append("Parameters:")
            for param, schema in properties.items():
                flag = "required" if param in required else "optional"
                lines.append(f"- {param} ({flag}): {schema.get('description', '')}")
        example = "".join(f"<{param}>...</{param}>" for param in properties)
        lines.append(f"Usage: <{self.name}>{example}</{self.name}>")
        return "\n".join(lines)

    def to_schema(self) -> dict[str, Any]:
        """Return the tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
