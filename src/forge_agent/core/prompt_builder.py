"""Prompt construction and formatting utilities.

This module renders an agent's system and user templates and converts
conversation history into the messages sent to the provider, including
the tagged-text rendering of tool results for agents without native
tool support.
"""

from typing import Any, Sequence
from xml.sax.saxutils import escape

from .. import prompts
from ..templates import TemplateRenderer
from ..tools.base import BaseTool
from ..types import TOOL_WIRE_PREFIX, Environment, Event, Message, MessageRole, Mode
from ..workflow.models import AgentDefinition


def render_tool_result(tool_name: str, output: str, is_error: bool = False) -> str:
    """Render a tool outcome as ``<tool_result>`` feedback text."""
    tag = "error" if is_error else "success"
    return (
        f"<tool_result><tool_name>{escape(tool_name)}</tool_name>"
        f"<{tag}>{escape(output)}</{tag}></tool_result>"
    )


class PromptBuilder:
    """Constructs prompts for one agent definition.

    Args:
        renderer: Template engine holding the workflow templates
        environment: Host description exposed as ``env``
        variables: Workflow variables exposed as ``variables``
        custom_instructions: Session-wide instructions appended to every
            agent's ``project_rules``
        learnings: Text exposed as ``learnings``
    """

    def __init__(
        self,
        renderer: TemplateRenderer,
        environment: Environment,
        variables: dict[str, Any] | None = None,
        custom_instructions: str | None = None,
        learnings: str = "",
    ):
        self.renderer = renderer
        self.environment = environment
        self.variables = dict(variables or {})
        self.custom_instructions = custom_instructions
        self.learnings = learnings

    def tool_information(self, tools: Sequence[BaseTool], tool_supported: bool, mode: Mode) -> str:
        """Numbered usage text for the effective tools plus protocol instructions."""
        if not tools:
            sections = [prompts.NO_TOOLS]
        else:
            usage = "\n\n".join(
                f"{i}. {tool.usage_prompt()}"
                for i, tool in enumerate(sorted(tools, key=lambda t: t.name), start=1)
            )
            protocol = prompts.NATIVE_TOOL_PROTOCOL if tool_supported else prompts.TAGGED_TOOL_PROTOCOL
            sections = [usage, protocol]
        if mode == Mode.PLAN:
            sections.append(prompts.PLAN_MODE_NOTICE)
        return "\n\n".join(sections)

    def _custom_instructions(self, definition: AgentDefinition) -> str:
        parts = [p for p in (definition.project_rules, self.custom_instructions) if p]
        return "\n\n".join(parts)

    def system_context(self, definition: AgentDefinition, tools: Sequence[BaseTool], mode: Mode) -> dict[str, Any]:
        return {
            "env": self.environment,
            "tool_information": self.tool_information(tools, definition.tool_supported, mode),
            "tool_supported": definition.tool_supported,
            "learnings": self.learnings,
            "custom_instructions": self._custom_instructions(definition),
            "variables": self.variables,
            "mode": mode.value,
        }

    def build_system_prompt(
        self,
        definition: AgentDefinition,
        tools: Sequence[BaseTool],
        mode: Mode,
    ) -> str | None:
        """Render the agent's system template, or None if it has none."""
        if definition.system_prompt is None:
            return None
        context = self.system_context(definition, tools, mode)
        return self.renderer.render(definition.system_prompt, context).strip()

    def build_user_prompt(self, definition: AgentDefinition, event: Event) -> str:
        """Render the agent's user template for an incoming event.

        Falls back to the bare event value when no template is configured.
        """
        if definition.user_prompt is None:
            return event.value
        context = {
            "env": self.environment,
            "event": event,
            "variables": self.variables,
            "custom_instructions": self._custom_instructions(definition),
        }
        return self.renderer.render(definition.user_prompt, context).strip()

    def build_messages(
        self,
        system_prompt: str | None,
        history: Sequence[Message],
        tool_supported: bool,
    ) -> list[Message]:
        """Convert stored history into provider messages.

        With native tool support the history is passed through. Without it,
        tool results become user messages carrying ``<tool_result>`` text and
        assistant messages drop their structured calls (the call is already
        in their text).
        """
        messages: list[Message] = []
        if system_prompt:
            messages.append(Message(role=MessageRole.SYSTEM, content=system_prompt))

        for message in history:
            if tool_supported:
                messages.append(message)
            elif message.role == MessageRole.TOOL:
                wire = f"{TOOL_WIRE_PREFIX}{message.name}" if message.name else "unknown"
                messages.append(Message(
                    role=MessageRole.USER,
                    content=render_tool_result(wire, message.content or "", message.is_error),
                ))
            elif message.role == MessageRole.ASSISTANT and message.tool_calls:
                messages.append(Message(role=MessageRole.ASSISTANT, content=message.content))
            else:
                messages.append(message)
        return messages
