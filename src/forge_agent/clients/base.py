"""Base class for LLM clients.

All LLM provider clients inherit from BaseLLMClient and implement
the normalization methods to convert between provider-specific formats
and the runtime's ``Message`` / ``ProviderReply`` types.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from ..exceptions import ProviderUnavailableError, RateLimitError
from ..logging import get_logger
from ..tools.base import BaseTool
from ..types import Message, ProviderReply

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (RateLimitError, ProviderUnavailableError)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> T:
    """Await ``fn()`` with exponential backoff on transient provider errors.

    Retries on RateLimitError and ProviderUnavailableError. Other exceptions
    are raised immediately. Cancellation is never retried.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        attempts: Total number of attempts (default: 3)
        initial_delay: Delay in seconds before the second attempt (default: 1.0)
        max_delay: Maximum delay in seconds (default: 30.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Whether to add random jitter to delay (default: True)

    Returns:
        Whatever ``fn()`` returns on the first successful attempt.

    Example:
        reply = await call_with_retry(lambda: client.generate(messages), attempts=3)
    """
    attempts = max(1, attempts)
    delay = initial_delay

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except RETRYABLE_ERRORS as e:
            if attempt == attempts:
                logger.warning(f"provider call failed after {attempts} attempt(s): {e}")
                raise

            actual_delay = min(delay, max_delay)
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                actual_delay = min(max(actual_delay, retry_after), max_delay)
            if jitter:
                actual_delay *= (0.5 + random.random())

            logger.info(
                f"retry {attempt}/{attempts - 1} after {actual_delay:.1f}s: {e}"
            )
            await asyncio.sleep(actual_delay)
            delay *= exponential_base

    raise RuntimeError("Unexpected retry loop exit")


class BaseLLMClient(ABC):
    """Abstract base class for all LLM clients.

    Each client is responsible for:
    1. Converting Message list to provider format
    2. Converting tool schemas to provider format
    3. Making API calls
    4. Converting responses back to ProviderReply

    Tool call arguments are passed back unparsed; the runtime's parser
    decides whether they are well formed.
    """

    provider_name: str = ""

    def __init__(self, model: str, client_config: dict | None = None):
        """Initialize the client.

        Args:
            model: Default model, used when a call does not name one
            client_config: Optional dictionary of configuration parameters
                           (e.g. temperature, max_tokens, etc.)
        """
        self.model = model
        self.client_config = client_config or {}

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        tools: list[BaseTool] | None = None,
        model: str | None = None,
    ) -> ProviderReply:
        """Generate a response from the LLM.

        Args:
            messages: Conversation history, system message first if any
            tools: Optional list of tools available to the model
            model: Optional model override for this call

        Returns:
            The provider reply

        Raises:
            ProviderError: Any failure talking to the provider
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the model ids the provider offers."""

    @abstractmethod
    def _convert_messages(self, messages: list[Message]) -> Any:
        """Convert messages to provider-specific format.

        - OpenAI-compatible: list of dicts with role/content/tool_calls
        - Anthropic: system separated, content blocks for tools
        """

    @abstractmethod
    def _convert_tools(self, tools: list[BaseTool]) -> list[dict[str, Any]]:
        """Convert tool definitions to provider-specific format."""

    @abstractmethod
    def _parse_response(self, response: Any) -> ProviderReply:
        """Parse provider response into a ``ProviderReply``."""
