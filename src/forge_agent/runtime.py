"""Per-agent execution loop.

An AgentRuntime turns one incoming event into a sequence of provider
calls and tool executions until the model answers without a tool call:

1. Render the prompt from the agent's templates and conversation
2. Call the provider (retried on transient failures)
3. Parse at most one tool call from the reply
4. Check the agent allow-list, the mode gate and optional user approval
5. Execute the tool and append its result, then go back to 1
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from . import prompts
from .clients.base import BaseLLMClient, call_with_retry
from .core.conversation import Conversation
from .core.prompt_builder import PromptBuilder, render_tool_result
from .core.tool_executor import ToolExecutor
from .exceptions import ParseError, ProviderError, ToolNotAvailableError
from .logging import get_logger
from .mode import ModeController
from .parser import ToolInvocationParser
from .tools.base import ToolContext
from .types import AgentStatus, Event, InstanceKey, ProviderReply, ToolCall, ToolResult, TurnOutcome
from .workflow.models import AgentDefinition

logger = get_logger(__name__)

ApprovalCallback = Callable[["AgentInstance", ToolCall, str], Awaitable[bool]]
DispatchCallable = Callable[[str, str, int, str], Awaitable[int]]


@dataclass
class AgentInstance:
    """A live agent: definition plus privately owned conversation and status.

    Only the task running the instance's turns mutates it.
    """
    key: InstanceKey
    definition: AgentDefinition
    conversation: Conversation = field(default_factory=Conversation)
    status: AgentStatus = AgentStatus.IDLE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    turns: int = 0
    thoughts: list[str] = field(default_factory=list)

    @property
    def agent_id(self) -> str:
        return self.definition.id

    @property
    def is_ephemeral(self) -> bool:
        return self.definition.ephemeral


class AgentRuntime:
    """Drive agent turns against a provider client and a tool executor.

    The runtime holds no per-instance state; the same runtime serves
    every instance of the session.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        executor: ToolExecutor,
        prompt_builder: PromptBuilder,
        mode: ModeController,
        parser: ToolInvocationParser | None = None,
        dispatch: DispatchCallable | None = None,
        approval_callback: ApprovalCallback | None = None,
        require_approval: bool = False,
        max_attempts: int = 3,
        retry_initial_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        max_tool_iterations: int = 50,
    ):
        """Initialize the runtime.

        Args:
            client: Provider client used for every model call
            executor: Tool registry and execution policy
            prompt_builder: Renders templates and provider messages
            mode: Session mode gate
            parser: Tool call parser; built from the executor's tools by default
            dispatch: Publishes agent-originated events (``event_dispatch``)
            approval_callback: Asked before confirmable tools run
            require_approval: Whether to ask at all
            max_attempts: Total provider attempts per model call
            retry_initial_delay: First backoff delay in seconds
            retry_max_delay: Backoff ceiling in seconds
            max_tool_iterations: Default tool round-trips allowed per turn
        """
        self.client = client
        self.executor = executor
        self.prompt_builder = prompt_builder
        self.mode = mode
        self.parser = parser or ToolInvocationParser(executor.required_parameters())
        self.dispatch = dispatch
        self.approval_callback = approval_callback
        self.require_approval = require_approval
        self.max_attempts = max_attempts
        self.retry_initial_delay = retry_initial_delay
        self.retry_max_delay = retry_max_delay
        self.max_tool_iterations = max_tool_iterations

    async def handle(self, instance: AgentInstance, event: Event) -> TurnOutcome:
        """Run one turn of ``instance`` for an incoming event.

        Returns:
            ``COMPLETED`` with the final content, or ``FAILED`` with the error.

        Raises:
            asyncio.CancelledError: The turn was interrupted; the instance is
                left ``IDLE`` with every outstanding call resolved.
        """
        definition = instance.definition
        instance.turns += 1
        instance.status = AgentStatus.RUNNING
        logger.debug(f"{instance.key} handling '{event.name}' (depth {event.depth})")

        try:
            instance.conversation.add_user(self.prompt_builder.build_user_prompt(definition, event))
            limit = definition.max_turns or self.max_tool_iterations

            for _ in range(limit):
                try:
                    reply = await self._generate(instance)
                except ProviderError as e:
                    return self._fail(instance, f"Provider error: {e}")

                try:
                    calls = self.parser.parse(reply, definition.tool_supported)
                except ParseError as e:
                    logger.info(f"{instance.key} sent a malformed tool call: {e}")
                    if reply.content:
                        instance.conversation.add_assistant(reply.content)
                    instance.conversation.add_user(
                        render_tool_result(e.tool_name or "unknown", str(e), is_error=True)
                    )
                    continue
                except ProviderError as e:
                    return self._fail(instance, f"Provider error: {e}")

                if not calls:
                    instance.conversation.add_assistant(reply.content)
                    instance.status = AgentStatus.COMPLETED
                    return TurnOutcome(status=AgentStatus.COMPLETED, content=reply.content)

                call = calls[0]
                instance.conversation.add_assistant(reply.content, [call])
                instance.status = AgentStatus.AWAITING_TOOL
                result = await self._run_tool(instance, call, event)
                instance.conversation.add_tool_result(result)
                instance.status = AgentStatus.RUNNING

            return self._fail(instance, f"Exceeded {limit} tool iterations in one turn")

        except asyncio.CancelledError:
            interrupted = instance.conversation.resolve_outstanding(prompts.INTERRUPTED_RESULT)
            instance.status = AgentStatus.IDLE
            logger.info(f"{instance.key} turn interrupted ({len(interrupted)} call(s) abandoned)")
            raise

    def _fail(self, instance: AgentInstance, error: str) -> TurnOutcome:
        logger.warning(f"{instance.key} failed: {error}")
        instance.status = AgentStatus.FAILED
        return TurnOutcome(status=AgentStatus.FAILED, error=error)

    async def _generate(self, instance: AgentInstance) -> ProviderReply:
        definition = instance.definition
        tools = self.executor.tools_for(self.mode.effective_tools(definition.tools))
        system_prompt = self.prompt_builder.build_system_prompt(definition, tools, self.mode.mode)
        messages = self.prompt_builder.build_messages(
            system_prompt, instance.conversation.messages, definition.tool_supported
        )
        native_tools = tools if definition.tool_supported and tools else None

        return await call_with_retry(
            lambda: self.client.generate(messages, tools=native_tools, model=definition.model),
            attempts=self.max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
        )

    async def _run_tool(self, instance: AgentInstance, call: ToolCall, event: Event) -> ToolResult:
        """Gate and execute one call; every refusal becomes an error result."""
        definition = instance.definition
        if call.tool_name not in definition.tools:
            error = ToolNotAvailableError(
                call.tool_name.wire_name,
                f"agent '{definition.id}' is not allowed to use it",
            )
            return ToolResult.failure(call, str(error))

        try:
            self.mode.check(call.tool_name)
        except ToolNotAvailableError as e:
            logger.info(f"{instance.key} blocked by mode gate: {call.tool_name.value}")
            return ToolResult.failure(call, str(e))

        if self.require_approval and self.approval_callback and self.executor.needs_approval(call):
            message = self.executor.confirmation_message(call)
            approved = await self.approval_callback(instance, call, message)
            if not approved:
                return ToolResult.failure(call, prompts.APPROVAL_DENIED_RESULT)

        context = ToolContext(
            agent_id=definition.id, depth=event.depth, dispatch=self.dispatch, thoughts=instance.thoughts,
        )
        return await self.executor.execute(call, context)
