"""Conversation history for one agent instance.

This module tracks the ordered message history and the tool calls that
are still waiting for a result.
"""

from typing import Callable

from ..exceptions import ProtocolViolationError
from ..types import Message, MessageRole, ToolCall, ToolResult


class Conversation:
    """Append-only conversation history.

    Messages are only ever appended; the history shrinks solely through
    ``reset()``. Every tool call issued by an assistant message stays
    outstanding until exactly one result is recorded for it.

    Attributes:
        on_append: Optional observer called with each appended message
    """

    def __init__(self, on_append: Callable[[Message], None] | None = None):
        self._messages: list[Message] = []
        self._outstanding: dict[str, ToolCall] = {}
        self.on_append = on_append

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def outstanding_calls(self) -> list[ToolCall]:
        return list(self._outstanding.values())

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        if self.on_append is not None:
            self.on_append(message)

    def add_user(self, content: str) -> None:
        self._append(Message(role=MessageRole.USER, content=content))

    def add_assistant(self, content: str | None, tool_calls: list[ToolCall] | None = None) -> None:
        """Add an assistant message, registering its tool calls as outstanding.

        Raises:
            ValueError: If two calls in the message share a call id.
        """
        calls = list(tool_calls or [])
        ids = [c.call_id for c in calls]
        if len(ids) != len(set(ids)) or any(i in self._outstanding for i in ids):
            raise ValueError(f"Duplicate tool call id in assistant message: {ids}")

        self._append(Message(role=MessageRole.ASSISTANT, content=content, tool_calls=calls or None))
        for call in calls:
            self._outstanding[call.call_id] = call

    def add_tool_result(self, result: ToolResult) -> None:
        """Record the result of an outstanding tool call.

        Raises:
            ProtocolViolationError: If no outstanding call has this id.
        """
        if result.call_id not in self._outstanding:
            raise ProtocolViolationError(result.call_id)
        del self._outstanding[result.call_id]
        self._append(Message(
            role=MessageRole.TOOL,
            content=result.output,
            tool_call_id=result.call_id,
            name=result.tool_name.value,
            is_error=result.is_error,
        ))

    def resolve_outstanding(self, output: str) -> list[ToolResult]:
        """Close every outstanding call with the same error output.

        Used when a turn is interrupted so that the history stays well formed.
        """
        results = [ToolResult.failure(call, output) for call in self.outstanding_calls]
        for result in results:
            self.add_tool_result(result)
        return results

    def reset(self) -> None:
        """Clear conversation history and outstanding calls."""
        self._messages = []
        self._outstanding = {}

    def to_dicts(self) -> list[dict]:
        """Export history as list of dicts."""
        return [msg.to_dict() for msg in self._messages]
