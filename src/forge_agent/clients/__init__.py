"""LLM client implementations.

All clients inherit from BaseLLMClient and speak the runtime's
``Message`` / ``ProviderReply`` types.
"""

from .anthropic import AnthropicClient
from .base import BaseLLMClient, call_with_retry
from .factory import create_client, get_available_providers, get_default_model
from .openai_compat import OpenAICompatibleClient

__all__ = [
    "AnthropicClient",
    "BaseLLMClient",
    "OpenAICompatibleClient",
    "call_with_retry",
    "create_client",
    "get_available_providers",
    "get_default_model",
]
