"""Core types shared by the orchestration runtime.

These types are provider-agnostic. Provider clients convert their own
wire formats to and from ``Message`` / ``ProviderReply``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple


TOOL_WIRE_PREFIX = "tool_forge_"


class MessageRole(Enum):
    """Role of a message in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(Enum):
    """Reason why the model stopped generating."""
    STOP = "stop"
    TOOL_USE = "tool_use"
    LENGTH = "length"
    ERROR = "error"


class Mode(Enum):
    """Session-wide operating mode."""
    ACT = "ACT"
    PLAN = "PLAN"


class AgentStatus(Enum):
    """Lifecycle status of an agent instance."""
    IDLE = "idle"
    RUNNING = "running"
    AWAITING_TOOL = "awaiting_tool"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETED, AgentStatus.FAILED)


class ToolName(Enum):
    """Closed catalog of built-in tool capabilities."""
    FS_READ = "fs_read"
    FS_CREATE = "fs_create"
    FS_REMOVE = "fs_remove"
    FS_SEARCH = "fs_search"
    FS_LIST = "fs_list"
    FS_INFO = "fs_info"
    FS_PATCH = "fs_patch"
    PROCESS_SHELL = "process_shell"
    THINK = "think"
    NET_FETCH = "net_fetch"
    EVENT_DISPATCH = "event_dispatch"

    @property
    def wire_name(self) -> str:
        """Name used on the wire, e.g. ``tool_forge_fs_read``."""
        return f"{TOOL_WIRE_PREFIX}{self.value}"

    @property
    def is_read_only(self) -> bool:
        return self in READ_ONLY_TOOLS

    @classmethod
    def from_token(cls, token: str) -> "ToolName":
        """Resolve either the bare capability name or the wire name.

        Raises:
            ValueError: If the token names no known tool.
        """
        value = token[len(TOOL_WIRE_PREFIX):] if token.startswith(TOOL_WIRE_PREFIX) else token
        return cls(value)


READ_ONLY_TOOLS = frozenset({
    ToolName.FS_READ,
    ToolName.FS_SEARCH,
    ToolName.FS_LIST,
    ToolName.FS_INFO,
    ToolName.THINK,
    ToolName.NET_FETCH,
})


BUILTIN_EVENTS = ("user_task_init", "user_task_update")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """A named, valued message routed by the event bus.

    Attributes:
        name: Event name agents subscribe to
        value: Payload handed to the subscriber's user prompt
        emitted_at: Publication timestamp
        depth: 0 for user events, parent depth + 1 for agent dispatches
        source: Id of the dispatching agent, if any
    """
    name: str
    value: str
    emitted_at: datetime = field(default_factory=_utcnow)
    depth: int = 0
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "emitted_at": self.emitted_at.isoformat(),
            "depth": self.depth,
            "source": self.source,
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""
    call_id: str
    tool_name: ToolName
    parameters: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "tool_name": self.tool_name.value,
            "parameters": self.parameters,
        }


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool call, fed back to the model."""
    call_id: str
    tool_name: ToolName
    output: str
    is_error: bool = False

    @classmethod
    def success(cls, call: ToolCall, output: str) -> "ToolResult":
        return cls(call_id=call.call_id, tool_name=call.tool_name, output=output)

    @classmethod
    def failure(cls, call: ToolCall, output: str) -> "ToolResult":
        return cls(call_id=call.call_id, tool_name=call.tool_name, output=output, is_error=True)


@dataclass
class Message:
    """A message in an agent's conversation.

    Attributes:
        role: The role of the message sender
        content: Text content of the message
        tool_calls: Tool calls issued by an assistant message
        tool_call_id: Call this message answers (tool role only)
        name: Tool name (tool role only)
        is_error: Whether a tool message carries an error
    """
    role: MessageRole
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary representation."""
        result: dict[str, Any] = {"role": self.role.value}
        if self.content is not None:
            result["content"] = self.content
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            result["name"] = self.name
        if self.is_error:
            result["is_error"] = True
        return result


@dataclass
class UsageStats:
    """Token usage statistics."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class RawToolCall:
    """A tool call exactly as the provider returned it.

    ``arguments`` is left unparsed (JSON text or a mapping) so that
    malformed payloads surface in the parser rather than in the client.
    """
    id: str | None
    name: str | None
    arguments: str | dict[str, Any] | None


@dataclass
class ProviderReply:
    """Response from an LLM provider."""
    content: str | None = None
    tool_calls: list[RawToolCall] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: UsageStats | None = None


@dataclass
class Environment:
    """Process environment exposed to templates as ``env``."""
    os: str
    cwd: str
    shell: str
    home: str | None = None


class InstanceKey(NamedTuple):
    """Identity of an agent instance: agent id plus instantiation generation."""
    agent_id: str
    generation: int

    def __str__(self) -> str:
        return f"{self.agent_id}#{self.generation}"


@dataclass
class TurnOutcome:
    """Result of one call to ``AgentRuntime.handle``.

    Attributes:
        status: Terminal status (``COMPLETED`` or ``FAILED``), or ``IDLE``
            when the turn was interrupted
        content: Final assistant content, if completed
        error: Error message, if failed
        interrupted: Whether the turn was cancelled by the user
    """
    status: AgentStatus
    content: str | None = None
    error: str | None = None
    interrupted: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status == AgentStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == AgentStatus.FAILED
