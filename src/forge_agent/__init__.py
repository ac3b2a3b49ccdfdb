"""Forge - a terminal multi-agent coding assistant.

Agents declared in a YAML workflow react to events, call a language
model provider, and use a fixed catalog of tools. The Orchestrator
routes events between them.
"""

from .exceptions import (
    ConfigError,
    ForgeError,
    ParseError,
    ProviderError,
    ToolError,
    ToolNotAvailableError,
)
from .orchestrator import Orchestrator
from .runtime import AgentInstance, AgentRuntime
from .types import (
    AgentStatus,
    Event,
    InstanceKey,
    Message,
    MessageRole,
    Mode,
    ToolCall,
    ToolName,
    ToolResult,
    TurnOutcome,
)
from .workflow import AgentDefinition, Workflow, WorkflowResolver

__version__ = "0.1.0"

__all__ = [
    # runtime
    "AgentInstance",
    "AgentRuntime",
    "Orchestrator",
    # workflow
    "AgentDefinition",
    "Workflow",
    "WorkflowResolver",
    # types
    "AgentStatus",
    "Event",
    "InstanceKey",
    "Message",
    "MessageRole",
    "Mode",
    "ToolCall",
    "ToolName",
    "ToolResult",
    "TurnOutcome",
    # exceptions
    "ConfigError",
    "ForgeError",
    "ParseError",
    "ProviderError",
    "ToolError",
    "ToolNotAvailableError",
]
