"""Client for OpenAI-compatible chat completion APIs.

One implementation serves the forge gateway, OpenRouter and OpenAI (or
any endpoint given by ``OPENAI_URL``); they differ only in base URL.
"""

import json
from contextlib import contextmanager
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, InternalServerError, NotFoundError
from openai import AuthenticationError as OpenAIAuthError
from openai import RateLimitError as OpenAIRateLimitError

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

SUPPORTED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "max_tokens",
    "stop",
    "presence_penalty",
    "frequency_penalty",
}


class OpenAICompatibleClient(BaseLLMClient):
    """Async client for providers speaking the OpenAI chat completions format."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        provider_name: str = "openai",
        client_config: dict | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key for the provider
            model: Default model name
            base_url: Endpoint override; None uses the SDK default
            provider_name: Label used in error messages and ``/info``
            client_config: Optional generation parameters
        """
        super().__init__(model, client_config)
        self.provider_name = provider_name
        self.base_url = base_url
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    @contextmanager
    def _handle_api_errors(self, model: str):
        """Map SDK exceptions onto the ProviderError hierarchy."""
        try:
            yield
        except OpenAIAuthError as e:
            raise AuthenticationError(f"{self.provider_name} authentication failed: {e}") from e
        except OpenAIRateLimitError as e:
            retry_after = None
            header = e.response.headers.get("retry-after") if e.response is not None else None
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            raise RateLimitError(f"{self.provider_name} rate limit exceeded", retry_after) from e
        except APIConnectionError as e:
            raise ProviderUnavailableError(f"{self.provider_name} API unavailable: {e}") from e
        except InternalServerError as e:
            raise ProviderUnavailableError(f"{self.provider_name} server error: {e}") from e
        except NotFoundError as e:
            raise ModelNotFoundError(model) from e
        except APIStatusError as e:
            raise ProviderError(f"{self.provider_name} request failed: {e}") from e

    async def generate(
        self,
        messages: list[Message],
        tools: list[BaseTool] | None = None,
        model: str | None = None,
    ) -> ProviderReply:
        """Generate a response from the provider.

        Raises:
            AuthenticationError: If API key is invalid
            RateLimitError: If rate limit is exceeded
            ProviderUnavailableError: If API is unavailable
            InvalidResponseError: If the response has an unexpected shape
        """
        resolved_model = model or self.model
        api_args: dict[str, Any] = {
            "model": resolved_model,
            "messages": self._convert_messages(messages),
        }
        if tools:
            api_args["tools"] = self._convert_tools(tools)
            api_args["tool_choice"] = "auto"

        for key, value in self.client_config.items():
            if key in SUPPORTED_CONFIG_KEYS:
                api_args[key] = value

        with self._handle_api_errors(resolved_model):
            response = await self.client.chat.completions.create(**api_args)
        return self._parse_response(response)

    async def list_models(self) -> list[str]:
        with self._handle_api_errors(self.model):
            page = await self.client.models.list()
        return sorted(model.id for model in page.data)

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        return [self._convert_message(msg) for msg in messages]

    def _convert_message(self, message: Message) -> dict[str, Any]:
        if message.role == MessageRole.SYSTEM:
            return {"role": "system", "content": message.content}
        if message.role == MessageRole.USER:
            return {"role": "user", "content": message.content}
        if message.role == MessageRole.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": message.content}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.call_id,
                        "type": "function",
                        "function": {
                            "name": tc.tool_name.wire_name,
                            "arguments": json.dumps(tc.parameters),
                        },
                    }
                    for tc in message.tool_calls
                ]
            return entry
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.content or "",
        }

    def _convert_tools(self, tools: list[BaseTool]) -> list[dict[str, Any]]:
        return [tool.to_schema() for tool in tools]

    def _map_finish_reason(self, reason: str | None) -> FinishReason:
        mapping = {
            "stop": FinishReason.STOP,
            "tool_calls": FinishReason.TOOL_USE,
            "length": FinishReason.LENGTH,
        }
        return mapping.get(reason or "stop", FinishReason.STOP)

    def _parse_response(self, response: Any) -> ProviderReply:
        try:
            choice = response.choices[0]
            message = choice.message

            tool_calls = [
                RawToolCall(
                    id=tc.id,
                    name=tc.function.name if tc.function else None,
                    arguments=tc.function.arguments if tc.function else None,
                )
                for tc in (message.tool_calls or [])
            ]

            usage = None
            if response.usage:
                usage = UsageStats(
                    prompt_tokens=response.usage.prompt_tokens,
                    completion_tokens=response.usage.completion_tokens,
                    total_tokens=response.usage.total_tokens,
                )

            return ProviderReply(
                content=message.content,
                tool_calls=tool_calls,
                finish_reason=self._map_finish_reason(choice.finish_reason),
                usage=usage,
            )
        except (AttributeError, IndexError, TypeError) as e:
            raise InvalidResponseError(
                f"Failed to parse {self.provider_name} response: {e}"
            ) from e
