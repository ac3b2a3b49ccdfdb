"""Tests for provider clients, the client factory, and retry."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from conftest import make_settings

from forge_agent.clients import AnthropicClient, BaseLLMClient, OpenAICompatibleClient, create_client
from forge_agent.clients import base as client_base
from forge_agent.clients.base import call_with_retry
from forge_agent.clients.factory import get_default_model
from forge_agent.config import FORGE_BASE_URL, OPENROUTER_BASE_URL
from forge_agent.exceptions import (
    AuthenticationError,
    ConfigError,
    InvalidResponseError,
    ProviderUnavailableError,
    RateLimitError,
)
from forge_agent.tools import ReadFileTool
from forge_agent.types import FinishReason, Message, MessageRole, ToolCall, ToolName

REQUEST = httpx.Request("POST", "https://example.test/v1/chat/completions")


def test_openai_client_is_instance_of_base():
    client = OpenAICompatibleClient(api_key="fake", model="gpt-4o")
    assert isinstance(client, BaseLLMClient)


def test_anthropic_client_is_instance_of_base():
    client = AnthropicClient(api_key="fake")
    assert isinstance(client, BaseLLMClient)


def test_anthropic_rejects_unknown_config():
    with pytest.raises(ValueError):
        AnthropicClient(api_key="fake", client_config={"frequency_penalty": 1})


class TestCallWithRetry:
    """Tests for call_with_retry."""

    @pytest.fixture
    def sleeps(self, monkeypatch):
        recorded = []

        async def fake_sleep(delay):
            recorded.append(delay)

        monkeypatch.setattr(client_base.asyncio, "sleep", fake_sleep)
        return recorded

    @pytest.mark.asyncio
    async def test_success_first_try(self, sleeps):
        fn = AsyncMock(return_value="ok")
        assert await call_with_retry(fn) == "ok"
        assert fn.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_exponential_backoff_then_give_up(self, sleeps):
        fn = AsyncMock(side_effect=ProviderUnavailableError("down"))
        with pytest.raises(ProviderUnavailableError):
            await call_with_retry(fn, attempts=3, initial_delay=1.0, jitter=False)
        assert fn.await_count == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_delay_capped(self, sleeps):
        fn = AsyncMock(side_effect=[RateLimitError(), RateLimitError(), RateLimitError(), "ok"])
        assert await call_with_retry(fn, attempts=4, initial_delay=4.0, max_delay=5.0, jitter=False) == "ok"
        assert sleeps == [4.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_retry_after_is_honored(self, sleeps):
        fn = AsyncMock(side_effect=[RateLimitError(retry_after=5), "ok"])
        assert await call_with_retry(fn, initial_delay=1.0, jitter=False) == "ok"
        assert sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_non_transient_errors_are_not_retried(self, sleeps):
        fn = AsyncMock(side_effect=AuthenticationError("bad key"))
        with pytest.raises(AuthenticationError):
            await call_with_retry(fn)
        assert fn.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_jitter_stays_in_range(self, sleeps):
        fn = AsyncMock(side_effect=[RateLimitError(), "ok"])
        await call_with_retry(fn, initial_delay=2.0)
        assert 1.0 <= sleeps[0] <= 3.0


class TestFactory:
    """Tests for create_client and provider detection."""

    def test_forge_key_wins(self):
        client = create_client(make_settings(forge_key="f", anthropic_api_key="a"))
        assert isinstance(client, OpenAICompatibleClient)
        assert client.provider_name == "forge"
        assert client.base_url == FORGE_BASE_URL
        assert client.model == get_default_model("forge")

    def test_openrouter(self):
        client = create_client(make_settings(openrouter_api_key="o"))
        assert client.provider_name == "openrouter"
        assert client.base_url == OPENROUTER_BASE_URL

    def test_openai_with_url_override(self):
        client = create_client(make_settings(openai_api_key="k", openai_url="http://localhost:8080/v1"))
        assert client.provider_name == "openai"
        assert client.base_url == "http://localhost:8080/v1"

    def test_anthropic(self):
        client = create_client(make_settings(anthropic_api_key="a"), model="claude-x")
        assert isinstance(client, AnthropicClient)
        assert client.model == "claude-x"

    def test_no_key(self):
        with pytest.raises(ConfigError) as exc_info:
            create_client(make_settings())
        assert exc_info.value.key == "FORGE_KEY"

    def test_explicit_provider_without_key(self):
        with pytest.raises(ConfigError) as exc_info:
            create_client(make_settings(forge_key="f"), provider="openai")
        assert exc_info.value.key == "OPENAI_API_KEY"

    def test_unknown_provider(self):
        with pytest.raises(ConfigError) as exc_info:
            get_default_model("carrier-pigeon")
        assert exc_info.value.key == "carrier-pigeon"


def read_call(call_id: str = "c1") -> ToolCall:
    return ToolCall(call_id=call_id, tool_name=ToolName.FS_READ, parameters={"path": "a.txt"})


class TestOpenAICompatibleClient:
    """Tests for message conversion and response parsing."""

    @pytest.fixture
    def client(self):
        return OpenAICompatibleClient(api_key="fake", model="gpt-4o")

    def test_convert_messages(self, client):
        messages = [
            Message(role=MessageRole.SYSTEM, content="sys"),
            Message(role=MessageRole.USER, content="read a.txt"),
            Message(role=MessageRole.ASSISTANT, content=None, tool_calls=[read_call()]),
            Message(role=MessageRole.TOOL, content="data", tool_call_id="c1", name="fs_read"),
        ]
        converted = client._convert_messages(messages)

        assert converted[0] == {"role": "system", "content": "sys"}
        assert converted[2]["tool_calls"] == [{
            "id": "c1",
            "type": "function",
            "function": {"name": "tool_forge_fs_read", "arguments": '{"path": "a.txt"}'},
        }]
        assert converted[3] == {"role": "tool", "tool_call_id": "c1", "content": "data"}

    def test_convert_tools(self, client, validator):
        [schema] = client._convert_tools([ReadFileTool(validator)])
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "tool_forge_fs_read"

    def test_parse_tool_call_response(self, client):
        response = SimpleNamespace(
            choices=[SimpleNamespace(
                message=SimpleNamespace(
                    content=None,
                    tool_calls=[SimpleNamespace(
                        id="c9",
                        function=SimpleNamespace(name="tool_forge_fs_read", arguments='{"path": "x"}'),
                    )],
                ),
                finish_reason="tool_calls",
            )],
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4, total_tokens=7),
        )
        reply = client._parse_response(response)

        assert reply.finish_reason == FinishReason.TOOL_USE
        assert reply.tool_calls[0].id == "c9"
        # arguments stay unparsed for the runtime's parser
        assert reply.tool_calls[0].arguments == '{"path": "x"}'
        assert reply.usage.total_tokens == 7

    def test_parse_empty_choices(self, client):
        with pytest.raises(InvalidResponseError):
            client._parse_response(SimpleNamespace(choices=[], usage=None))

    @pytest.mark.asyncio
    async def test_generate_passes_model_override(self, client):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="hi", tool_calls=None), finish_reason="stop")],
            usage=None,
        )
        client.client = MagicMock()
        client.client.chat.completions.create = AsyncMock(return_value=response)

        reply = await client.generate([Message(role=MessageRole.USER, content="hello")], model="other")

        assert reply.content == "hi"
        kwargs = client.client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "other"
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, client):
        response = httpx.Response(429, headers={"retry-after": "3"}, request=REQUEST)
        client.client = MagicMock()
        client.client.chat.completions.create = AsyncMock(
            side_effect=openai.RateLimitError("slow down", response=response, body=None)
        )

        with pytest.raises(RateLimitError) as exc_info:
            await client.generate([Message(role=MessageRole.USER, content="hello")])
        assert exc_info.value.retry_after == 3.0

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, client):
        client.client = MagicMock()
        client.client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=REQUEST))

        with pytest.raises(ProviderUnavailableError):
            await client.generate([Message(role=MessageRole.USER, content="hello")])

    @pytest.mark.asyncio
    async def test_list_models_sorted(self, client):
        client.client = MagicMock()
        client.client.models.list = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(id="b"), SimpleNamespace(id="a")])
        )
        assert await client.list_models() == ["a", "b"]


class TestAnthropicClient:
    """Tests for the Anthropic conversion rules."""

    @pytest.fixture
    def client(self):
        return AnthropicClient(api_key="fake")

    def test_system_prompt_is_separated(self, client):
        system, converted = client._convert_messages([
            Message(role=MessageRole.SYSTEM, content="sys"),
            Message(role=MessageRole.USER, content="hi"),
        ])
        assert system == "sys"
        assert converted == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]

    def test_tool_results_merge_into_user_turn(self, client):
        _, converted = client._convert_messages([
            Message(role=MessageRole.USER, content="read"),
            Message(role=MessageRole.ASSISTANT, content="Reading.", tool_calls=[read_call()]),
            Message(role=MessageRole.TOOL, content="nope", tool_call_id="c1", is_error=True),
            Message(role=MessageRole.USER, content="and then?"),
        ])

        assert [m["role"] for m in converted] == ["user", "assistant", "user"]
        assert converted[1]["content"][1] == {
            "type": "tool_use", "id": "c1", "name": "tool_forge_fs_read", "input": {"path": "a.txt"},
        }
        tool_result, follow_up = converted[2]["content"]
        assert tool_result == {"type": "tool_result", "tool_use_id": "c1", "content": "nope", "is_error": True}
        assert follow_up == {"type": "text", "text": "and then?"}

    def test_convert_tools(self, client, validator):
        [schema] = client._convert_tools([ReadFileTool(validator)])
        assert schema["name"] == "tool_forge_fs_read"
        assert schema["input_schema"]["required"] == ["path"]

    def test_parse_response(self, client):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me look."),
                SimpleNamespace(type="tool_use", id="t1", name="tool_forge_fs_read", input={"path": "a"}),
            ],
            stop_reason="tool_use",
            usage=SimpleNamespace(input_tokens=5, output_tokens=6),
        )
        reply = client._parse_response(response)
        assert reply.content == "Let me look."
        assert reply.tool_calls[0].arguments == {"path": "a"}
        assert reply.finish_reason == FinishReason.TOOL_USE
        assert reply.usage.total_tokens == 11

    @pytest.mark.asyncio
    async def test_vendor_prefix_is_stripped(self, client):
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="hi")],
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=1, output_tokens=1),
        )
        client.client = MagicMock()
        client.client.messages.create = AsyncMock(return_value=response)

        await client.generate(
            [Message(role=MessageRole.SYSTEM, content="sys"), Message(role=MessageRole.USER, content="hi")],
            model="anthropic/claude-3.5-sonnet",
        )

        kwargs = client.client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-3.5-sonnet"
        assert kwargs["system"] == "sys"
        assert kwargs["max_tokens"] == 4096
