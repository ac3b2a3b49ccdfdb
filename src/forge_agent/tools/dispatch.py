from typing import Any

from ..exceptions import ToolExecutionError
from ..types import ToolName
from .base import BaseTool, ToolContext


class EventDispatchTool(BaseTool):
    """Publish an event for other agents (or this one) to react to.

    The orchestrator's dispatch callable enforces the recursion depth
    guard and raises ``DispatchDepthExceededError`` when it trips.
    """

    NEEDS_CONTEXT = True

    @property
    def tool_name(self) -> ToolName:
        return ToolName.EVENT_DISPATCH

    @property
    def description(self) -> str:
        return (
            "Dispatch an event by name with a text value. Every agent subscribed to "
            "the event receives the value as a new task."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Name of the event to dispatch.",
                },
                "value": {
                    "type": "string",
                    "description": "Payload handed to subscribing agents.",
                },
            },
            "required": ["name", "value"],
        }

    async def execute(self, name: str, value: str, context: ToolContext | None = None) -> str:
        if context is None or context.dispatch is None:
            raise ToolExecutionError(self.tool_name.value, "event dispatch is not wired to an orchestrator")

        reached = await context.dispatch(name, value, context.depth, context.agent_id)
        if reached == 0:
            return f"Event '{name}' dispatched, but no agent subscribes to it"
        return f"Event '{name}' dispatched to {reached} agent(s)"
