"""Core agent components.

This module provides the collaborators every agent instance relies on:
- Conversation: Ordered message history with outstanding tool call tracking
- PromptBuilder: Renders templates and builds provider messages
- ToolExecutor: Registration table and execution policy for tools
"""

from .conversation import Conversation
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

__all__ = ["Conversation", "PromptBuilder", "ToolExecutor"]
