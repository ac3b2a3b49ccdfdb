"""Tool execution logic for the runtime.

This module maps ``ToolName`` variants to tool instances, decides which
calls need user approval, and runs tools with a timeout, converting every
tool failure into an error-flagged ``ToolResult``.
"""

import asyncio
import fnmatch
import inspect
from typing import Iterable

from ..exceptions import ToolExecutionError, ToolTimeoutError
from ..logging import get_logger
from ..tools.base import BaseTool, ToolContext
from ..types import ToolCall, ToolName, ToolResult

logger = get_logger(__name__)


class ToolExecutor:
    """Registration table ``ToolName -> BaseTool`` plus execution policy.

    This class manages the execution of tool calls, including:
    - Auto-approval pattern matching
    - Confirmation requirement checking
    - Timeouts, and conversion of failures into error results
    """

    def __init__(
        self,
        tools: Iterable[BaseTool],
        auto_approve_patterns: dict[str, list[str]] | None = None,
        timeout: float = 300.0,
    ):
        """Initialize the tool executor.

        Args:
            tools: Tool instances; at most one per ``ToolName``.
            auto_approve_patterns: Dict mapping operation types to patterns
                to auto-approve. Example: {"write": ["tests/*", "*.log"]}
            timeout: Per-call execution timeout in seconds.
        """
        self.tools: dict[ToolName, BaseTool] = {}
        for tool in tools:
            if tool.tool_name in self.tools:
                raise ValueError(f"Duplicate tool registration: {tool.tool_name.value}")
            self.tools[tool.tool_name] = tool
        self.auto_approve_patterns = auto_approve_patterns or {}
        self.timeout = timeout

    def get_tool(self, name: ToolName) -> BaseTool | None:
        return self.tools.get(name)

    def tools_for(self, names: Iterable[ToolName]) -> list[BaseTool]:
        """Registered tools for the given names, in registration order."""
        wanted = set(names)
        return [tool for name, tool in self.tools.items() if name in wanted]

    def required_parameters(self) -> dict[ToolName, list[str]]:
        return {name: tool.required_parameters for name, tool in self.tools.items()}

    def is_auto_approved(self, operation: str, value: str) -> bool:
        """Check if an operation is auto-approved by configured patterns.

        Args:
            operation: The operation type (e.g., "write", "execute").
            value: The value to check against patterns.

        Returns:
            True if the operation matches an auto-approve pattern.
        """
        patterns = self.auto_approve_patterns.get(operation, [])
        return any(fnmatch.fnmatch(value, p) for p in patterns)

    def needs_approval(self, call: ToolCall) -> bool:
        """Check whether a call must be confirmed by the user before running."""
        tool = self.get_tool(call.tool_name)
        if tool is None or not tool.REQUIRES_CONFIRMATION:
            return False

        check_value = str(call.parameters.get(tool.CONFIRMATION_CHECK_ARG, ""))
        return not self.is_auto_approved(tool.OPERATION_TYPE, check_value)

    def confirmation_message(self, call: ToolCall) -> str:
        tool = self.get_tool(call.tool_name)
        if tool is None:
            return f"Execute {call.tool_name.wire_name} with args: {call.parameters}"
        return tool.get_confirmation_message(**call.parameters)

    def _check_arguments(self, tool: BaseTool, call: ToolCall) -> str | None:
        """Return an error message if the arguments do not fit the schema."""
        known = set(tool.parameters.get("properties", {}))
        missing = [p for p in tool.required_parameters if p not in call.parameters]
        unknown = [p for p in call.parameters if p not in known]
        if missing:
            return f"Missing required parameter(s) for {tool.name}: {', '.join(missing)}"
        if unknown:
            return f"Unknown parameter(s) for {tool.name}: {', '.join(unknown)}"
        return None

    async def _invoke(self, tool: BaseTool, call: ToolCall, context: ToolContext | None) -> str:
        kwargs = dict(call.parameters)
        if tool.NEEDS_CONTEXT:
            kwargs["context"] = context

        if inspect.iscoroutinefunction(tool.execute):
            result = await tool.execute(**kwargs)
        else:
            result = await asyncio.to_thread(tool.execute, **kwargs)
        return str(result)

    async def execute(self, call: ToolCall, context: ToolContext | None = None) -> ToolResult:
        """Execute a single tool call.

        Tool failures are never raised: they come back as a ``ToolResult``
        with ``is_error`` set so the model can decide what to do next.
        Cancellation of the awaiting task does propagate.

        Args:
            call: The parsed tool call.
            context: Caller identity for tools that need it.

        Returns:
            The tool result.
        """
        tool = self.get_tool(call.tool_name)
        if tool is None:
            available = ", ".join(sorted(t.name for t in self.tools.values()))
            return ToolResult.failure(
                call,
                f"No tool with name '{call.tool_name.wire_name}' was found. "
                f"Please try again with one of these tools {available}",
            )

        problem = self._check_arguments(tool, call)
        if problem:
            return ToolResult.failure(call, problem)

        logger.info(f"Executing tool: {tool.name} with args: {call.parameters}")
        try:
            output = await asyncio.wait_for(self._invoke(tool, call, context), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = ToolTimeoutError(call.tool_name.value, self.timeout)
            logger.warning(str(error))
            return ToolResult.failure(call, str(error))
        except ToolExecutionError as e:
            logger.info(f"Tool {tool.name} failed: {e}")
            return ToolResult.failure(call, str(e))
        except Exception as e:
            logger.info(f"Tool {tool.name} failed: {e}")
            return ToolResult.failure(call, f"Tool execution failed: {e}")

        return ToolResult.success(call, output)
