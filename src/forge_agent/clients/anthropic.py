"""Anthropic client implementation.

Anthropic has unique requirements:
- System prompt is passed separately, not in messages
- Tool calls use content blocks with type "tool_use"
- Tool results go in user messages with type "tool_result"
- Consecutive messages of the same role must be merged
"""

from typing import Any

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic, InternalServerError, NotFoundError
from anthropic import AuthenticationError as AnthropicAuthError
from anthropic import RateLimitError as AnthropicRateLimitError

from ..exceptions import (
    AuthenticationError,
    InvalidResponseError,
    ModelNotFoundError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
)
from ..tools.base import BaseTool
from ..types import FinishReason, Message, MessageRole, ProviderReply, RawToolCall, UsageStats
from .base import BaseLLMClient

# supported configuration keys for anthropic
SUPPORTED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop_sequences",
}

# workflow model ids may carry a gateway vendor prefix
VENDOR_PREFIX = "anthropic/"


class AnthropicClient(BaseLLMClient):
    """Async Anthropic API client."""

    provider_name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-5-20250929",
        client_config: dict | None = None,
    ):
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Default model.
            client_config: Optional configuration parameters:
                - temperature: float (0.0-1.0, default 1.0)
                - top_p: float (nucleus sampling)
                - top_k: int (top-k sampling)
                - max_tokens: int (default 4096)
                - stop_sequences: list[str]
        """
        super().__init__(model, client_config)
        unsupported = set(self.client_config) - SUPPORTED_CONFIG_KEYS
        if unsupported:
            raise ValueError(f"Unsupported config keys for Anthropic: {unsupported}")
        self.client = AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        messages: list[Message],
        tools: list[BaseTool] | None = None,
        model: str | None = None,
    ) -> ProviderReply:
        """Generate a response from Anthropic.

        Raises:
            AuthenticationError: If API key is invalid
            RateLimitError: If rate limit is exceeded
            ProviderUnavailableError: If API is unavailable
        """
        resolved_model = (model or self.model).removeprefix(VENDOR_PREFIX)
        system_prompt, converted_messages = self._convert_messages(messages)

        kwargs: dict[str, Any] = {
            "model": resolved_model,
            "messages": converted_messages,
            "max_tokens": self.client_config.get("max_tokens", 4096),
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = self._convert_tools(tools)
        for key in ("temperature", "top_p", "top_k", "stop_sequences"):
            if key in self.client_config:
                kwargs[key] = self.client_config[key]

        try:
            response = await self.client.messages.create(**kwargs)
        except AnthropicAuthError as e:
            raise AuthenticationError(f"Anthropic authentication failed: {e}") from e
        except AnthropicRateLimitError as e:
            raise RateLimitError("Anthropic rate limit exceeded") from e
        except APIConnectionError as e:
            raise ProviderUnavailableError(f"Anthropic API unavailable: {e}") from e
        except InternalServerError as e:
            raise ProviderUnavailableError(f"Anthropic server error: {e}") from e
        except NotFoundError as e:
            raise ModelNotFoundError(resolved_model) from e
        except APIStatusError as e:
            raise ProviderError(f"Anthropic request failed: {e}") from e

        return self._parse_response(response)

    async def list_models(self) -> list[str]:
        try:
            page = await self.client.models.list()
        except AnthropicAuthError as e:
            raise AuthenticationError(f"Anthropic authentication failed: {e}") from e
        except APIConnectionError as e:
            raise ProviderUnavailableError(f"Anthropic API unavailable: {e}") from e
        return sorted(model.id for model in page.data)

    def _convert_messages(
        self, messages: list[Message]
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Convert messages to Anthropic format, merging same-role neighbours."""
        system_prompt = None
        converted: list[dict[str, Any]] = []

        def push(role: str, blocks: list[dict[str, Any]]) -> None:
            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content

            elif msg.role == MessageRole.USER:
                push("user", [{"type": "text", "text": msg.content or ""}])

            elif msg.role == MessageRole.ASSISTANT:
                blocks: list[dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.call_id,
                        "name": tc.tool_name.wire_name,
                        "input": tc.parameters,
                    })
                if blocks:
                    push("assistant", blocks)

            elif msg.role == MessageRole.TOOL:
                push("user", [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content or "",
                    "is_error": msg.is_error,
                }])

        return system_prompt, converted

    def _convert_tools(self, tools: list[BaseTool]) -> list[dict[str, Any]]:
        """Convert tools to Anthropic format with input_schema."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _parse_response(self, response: Any) -> ProviderReply:
        try:
            tool_calls = []
            text_content = ""

            for block in response.content:
                if block.type == "text":
                    text_content += block.text
                elif block.type == "tool_use":
                    tool_calls.append(RawToolCall(id=block.id, name=block.name, arguments=block.input))

            finish_map = {
                "end_turn": FinishReason.STOP,
                "tool_use": FinishReason.TOOL_USE,
                "max_tokens": FinishReason.LENGTH,
            }

            return ProviderReply(
                content=text_content if text_content else None,
                tool_calls=tool_calls,
                finish_reason=finish_map.get(response.stop_reason, FinishReason.STOP),
                usage=UsageStats(
                    prompt_tokens=response.usage.input_tokens,
                    completion_tokens=response.usage.output_tokens,
                    total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                ),
            )
        except (AttributeError, TypeError) as e:
            raise InvalidResponseError(f"Failed to parse Anthropic response: {e}") from e
