from typing import Any

from ..types import ToolName
from .base import BaseTool, ToolContext
from .filesystem import as_bool


class ThinkTool(BaseTool):
    """Scratchpad for step-by-step reasoning.

    Thoughts go to the calling instance's scratchpad (``context.thoughts``),
    so numbering is private to one agent instance. Without a context the
    thought is only echoed.
    """

    NEEDS_CONTEXT = True

    @property
    def tool_name(self) -> ToolName:
        return ToolName.THINK

    @property
    def description(self) -> str:
        return (
            "Think through a problem one step at a time. Each thought may build on, "
            "question or revise earlier ones. Use it to plan before acting and to "
            "check a hypothesis before answering."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "thought": {
                    "type": "string",
                    "description": "The current thinking step.",
                },
                "thought_number": {
                    "type": "string",
                    "description": "Index of this thought, starting at 1.",
                },
                "total_thoughts": {
                    "type": "string",
                    "description": "Current estimate of thoughts needed.",
                },
                "next_thought_needed": {
                    "type": "string",
                    "description": "'true' if another thought should follow.",
                },
            },
            "required": ["thought"],
        }

    def execute(
        self,
        thought: str,
        thought_number: Any = None,
        total_thoughts: Any = None,
        next_thought_needed: Any = False,
        context: ToolContext | None = None,
    ) -> str:
        thoughts = context.thoughts if context is not None and context.thoughts is not None else []
        thoughts.append(thought)
        number = int(thought_number) if thought_number else len(thoughts)
        total = max(int(total_thoughts) if total_thoughts else number, number)
        status = "continue" if as_bool(next_thought_needed) else "done"
        return f"Thought {number}/{total} recorded ({status})"
