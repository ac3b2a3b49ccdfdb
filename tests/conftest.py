"""Shared test fixtures and configuration."""

import asyncio
from typing import Any, Callable

import pytest

from forge_agent.clients.base import BaseLLMClient
from forge_agent.config import Settings
from forge_agent.core.tool_executor import ToolExecutor
from forge_agent.tools import PathValidator, get_default_tools
from forge_agent.types import Environment, Message, MessageRole, ProviderReply, RawToolCall
from forge_agent.workflow import Workflow, build_workflow


Responder = Callable[[list[Message], Any, str | None], Any]


class ScriptedClient(BaseLLMClient):
    """Provider stand-in answering from a script or a responder function.

    Script items are ``ProviderReply`` objects (returned) or exceptions
    (raised). A responder receives ``(messages, tools, model)`` and may be
    a coroutine function. Every call is recorded in ``calls``.
    """

    provider_name = "scripted"

    def __init__(self, script: list | None = None, responder: Responder | None = None):
        super().__init__("test-model")
        self.script = list(script or [])
        self.responder = responder
        self.calls: list[dict[str, Any]] = []

    async def generate(self, messages, tools=None, model=None) -> ProviderReply:
        self.calls.append({"messages": list(messages), "tools": tools, "model": model})
        if self.responder is not None:
            result = self.responder(list(messages), tools, model)
            if asyncio.iscoroutine(result):
                result = await result
        elif self.script:
            result = self.script.pop(0)
        else:
            result = ProviderReply(content="done")
        if isinstance(result, Exception):
            raise result
        return result

    async def list_models(self) -> list[str]:
        return ["model-a", "model-b"]

    def _convert_messages(self, messages):
        return messages

    def _convert_tools(self, tools):
        return [tool.to_schema() for tool in tools]

    def _parse_response(self, response):
        return response


def text_reply(content: str) -> ProviderReply:
    return ProviderReply(content=content)


def native_call(name: str, arguments: Any, call_id: str = "call_1", content: str | None = None) -> ProviderReply:
    return ProviderReply(
        content=content,
        tool_calls=[RawToolCall(id=call_id, name=name, arguments=arguments)],
    )


def last_message(messages: list[Message]) -> Message:
    return messages[-1]


def is_new_event(messages: list[Message]) -> bool:
    """True when the model is answering a fresh user event rather than a tool result."""
    return last_message(messages).role == MessageRole.USER


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment, with instant retries."""
    values: dict[str, Any] = {
        "forge_key": None,
        "openrouter_api_key": None,
        "openai_api_key": None,
        "anthropic_api_key": None,
        "openai_url": None,
        "retry_initial_delay": 0.0,
        "retry_max_delay": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def environment(tmp_path):
    return Environment(os="Linux", cwd=str(tmp_path), shell="/bin/bash", home="/home/test")


@pytest.fixture
def validator(tmp_path):
    return PathValidator([tmp_path])


@pytest.fixture
def executor(validator):
    """Executor over the full built-in catalog, rooted at tmp_path."""
    return ToolExecutor(get_default_tools(validator), timeout=5)


@pytest.fixture
def make_workflow() -> Callable[..., Workflow]:
    """Build a validated workflow from agent records."""

    def _make(*agents: dict[str, Any], templates: dict[str, str] | None = None, variables=None) -> Workflow:
        document = {
            "variables": variables or {},
            "agents": list(agents),
            "templates": templates or {},
        }
        return build_workflow(document, source="test")

    return _make
