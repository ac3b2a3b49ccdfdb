"""Session orchestration: event routing, instance lifecycle, and commands.

The Orchestrator owns the EventBus and every live AgentInstance. Each
instance is drained by its own worker task, and each turn runs as a
separate task so that a user interrupt can cancel it without touching
the worker or any other instance.
"""

import asyncio
import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from .bus import EventBus
from .clients.base import BaseLLMClient
from .config import Settings
from .core.conversation import Conversation
from .core.prompt_builder import PromptBuilder
from .core.tool_executor import ToolExecutor
from .eventlog import EventLog
from .exceptions import DispatchDepthExceededError
from .logging import get_logger
from .mode import ModeController
from .runtime import AgentInstance, AgentRuntime, ApprovalCallback
from .templates import FormatRenderer, detect_environment
from .types import AgentStatus, Environment, Event, InstanceKey, Mode, TurnOutcome
from .workflow.models import AgentDefinition, Workflow

logger = get_logger(__name__)

OutcomeCallback = Callable[[InstanceKey, TurnOutcome], None]


class Orchestrator:
    """Owns the event bus and the live agent instances of one session.

    Example:
        orchestrator = Orchestrator(workflow, client, executor)
        orchestrator.publish("user_task_init", "add a README")
        await orchestrator.wait_idle()
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        workflow: Workflow,
        client: BaseLLMClient,
        executor: ToolExecutor,
        settings: Settings | None = None,
        *,
        environment: Environment | None = None,
        custom_instructions: str | None = None,
        learnings: str = "",
        approval_callback: ApprovalCallback | None = None,
        on_outcome: OutcomeCallback | None = None,
        event_log: EventLog | None = None,
        max_dispatch_depth: int | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            workflow: The resolved, immutable session workflow
            client: Provider client shared by all agents
            executor: Tool registry shared by all agents
            settings: Runtime knobs; defaults to ``Settings()`` values
            environment: Host description for templates (detected if omitted)
            custom_instructions: Session instructions added to every agent
            learnings: Text exposed to templates as ``learnings``
            approval_callback: Asked before confirmable tools when approval is required
            on_outcome: Called with every finished turn's outcome
            event_log: Optional append-only log of events and messages
            max_dispatch_depth: Override for ``settings.max_dispatch_depth``
        """
        settings = settings or Settings()
        self.workflow = workflow
        self.client = client
        self.executor = executor
        self.environment = environment or detect_environment()
        self.on_outcome = on_outcome
        self.event_log = event_log
        self.max_dispatch_depth = (
            max_dispatch_depth if max_dispatch_depth is not None else settings.max_dispatch_depth
        )

        self.mode = ModeController()
        self.bus = EventBus(workflow, on_new_mailbox=self._start_instance)
        self.prompt_builder = PromptBuilder(
            FormatRenderer(workflow.templates),
            self.environment,
            variables=workflow.variables,
            custom_instructions=custom_instructions,
            learnings=learnings,
        )
        self.runtime = AgentRuntime(
            client,
            executor,
            self.prompt_builder,
            self.mode,
            dispatch=self.dispatch,
            approval_callback=approval_callback,
            require_approval=settings.require_approval,
            max_attempts=settings.provider_max_attempts,
            retry_initial_delay=settings.retry_initial_delay,
            retry_max_delay=settings.retry_max_delay,
            max_tool_iterations=settings.max_tool_iterations,
        )

        self._instances: dict[InstanceKey, AgentInstance] = {}
        self._workers: dict[InstanceKey, asyncio.Task] = {}
        self._turns: dict[InstanceKey, asyncio.Task] = {}
        self._foreground: InstanceKey | None = None
        self._unsettled = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # =========================================================================
    # Publishing
    # =========================================================================

    def _publish(self, event: Event) -> int:
        if self._closed:
            logger.warning(f"Session closed; dropping event '{event.name}'")
            return 0
        if self.event_log is not None:
            self.event_log.record_event(event)
        delivered = self.bus.publish(event)
        if delivered:
            self._unsettled += len(delivered)
            self._idle.clear()
        return len(delivered)

    def publish(self, name: str, value: str) -> int:
        """Publish a user-originated event (depth 0).

        Returns:
            Number of mailboxes that received the event.
        """
        return self._publish(Event(name=name, value=value))

    async def dispatch(self, name: str, value: str, parent_depth: int, source: str) -> int:
        """Publish an agent-originated event one level below its parent.

        Raises:
            DispatchDepthExceededError: The new depth would exceed the guard.
        """
        depth = parent_depth + 1
        if depth > self.max_dispatch_depth:
            error = DispatchDepthExceededError(name, depth, self.max_dispatch_depth)
            logger.warning(f"{source}: {error}")
            raise error
        return self._publish(Event(name=name, value=value, depth=depth, source=source))

    # =========================================================================
    # Instance lifecycle
    # =========================================================================

    def _start_instance(
        self,
        key: InstanceKey,
        definition: AgentDefinition,
        mailbox: "asyncio.Queue[Event]",
    ) -> None:
        on_append = None
        if self.event_log is not None:
            log = self.event_log
            on_append = lambda message: log.record_message(key, message)

        instance = AgentInstance(key=key, definition=definition, conversation=Conversation(on_append))
        self._instances[key] = instance
        self._workers[key] = asyncio.get_running_loop().create_task(
            self._worker(instance, mailbox), name=f"agent-{key}"
        )
        logger.debug(f"Created instance {key}")

    def _destroy(self, key: InstanceKey) -> None:
        self._instances.pop(key, None)
        self._workers.pop(key, None)
        self.bus.close_mailbox(key)
        if self._foreground == key:
            self._foreground = None
        logger.debug(f"Destroyed instance {key}")

    def _settle(self) -> None:
        self._unsettled -= 1
        if self._unsettled <= 0:
            self._unsettled = 0
            self._idle.set()

    async def _worker(self, instance: AgentInstance, mailbox: "asyncio.Queue[Event]") -> None:
        """Drain one instance's mailbox, one turn at a time, in arrival order."""
        while True:
            event = await mailbox.get()
            try:
                await self._run_turn(instance, event)
            finally:
                if instance.is_ephemeral:
                    self._destroy(instance.key)
                mailbox.task_done()
                self._settle()
            if instance.is_ephemeral:
                return

    async def _run_turn(self, instance: AgentInstance, event: Event) -> None:
        key = instance.key
        turn = asyncio.get_running_loop().create_task(
            self.runtime.handle(instance, event), name=f"turn-{key}"
        )
        self._turns[key] = turn
        if not instance.is_ephemeral or self._foreground is None:
            self._foreground = key

        try:
            outcome = await turn
        except asyncio.CancelledError:
            # a cancelled worker is session shutdown; a cancelled turn alone is an interrupt
            if asyncio.current_task().cancelling():
                raise
            outcome = TurnOutcome(status=AgentStatus.IDLE, interrupted=True)
        except Exception as e:
            logger.exception(f"Unexpected error in turn of {key}")
            instance.status = AgentStatus.FAILED
            outcome = TurnOutcome(status=AgentStatus.FAILED, error=f"Internal error: {e}")
        finally:
            self._turns.pop(key, None)

        if outcome.is_failed:
            logger.warning(f"{key} failed: {outcome.error}")
        if self.on_outcome is not None:
            try:
                self.on_outcome(key, outcome)
            except Exception:
                logger.exception("Outcome callback raised")

    # =========================================================================
    # Commands
    # =========================================================================

    @property
    def instances(self) -> dict[InstanceKey, AgentInstance]:
        return dict(self._instances)

    def get_instance(self, agent_id: str, generation: int = 0) -> AgentInstance | None:
        return self._instances.get(InstanceKey(agent_id, generation))

    @property
    def foreground(self) -> InstanceKey | None:
        if self._foreground in self._turns:
            return self._foreground
        for key in reversed(list(self._turns)):
            return key
        return self._foreground

    def is_busy(self) -> bool:
        return bool(self._turns) or not self._idle.is_set()

    def interrupt(self) -> bool:
        """Cancel the foreground instance's running turn.

        Returns:
            Whether a running turn was cancelled.
        """
        key = self.foreground
        turn = self._turns.get(key) if key is not None else None
        if turn is None or turn.done():
            return False
        logger.info(f"Interrupting turn of {key}")
        return turn.cancel()

    async def reset(self, agent_id: str | None = None) -> int:
        """Clear persistent instances' conversations (``/new``).

        Running turns on those instances are interrupted first.

        Args:
            agent_id: Only reset this agent; all persistent agents if None

        Returns:
            Number of instances reset
        """
        targets = [
            instance for instance in self._instances.values()
            if not instance.is_ephemeral and (agent_id is None or instance.agent_id == agent_id)
        ]
        running = [self._turns[i.key] for i in targets if i.key in self._turns]
        for turn in running:
            turn.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

        for instance in targets:
            instance.conversation.reset()
            instance.thoughts.clear()
            instance.status = AgentStatus.IDLE
        logger.info(f"Reset {len(targets)} instance(s)")
        return len(targets)

    def set_mode(self, mode: Mode) -> bool:
        return self.mode.switch(mode)

    def handle_command(self, text: str) -> Mode | None:
        """Apply ``/act`` or ``/plan``; returns the new mode, or None if not a mode command."""
        return self.mode.handle_command(text)

    def dump(self, path: str | Path | None = None) -> Path:
        """Write every live instance's conversation to a JSON file (``/dump``)."""
        now = datetime.now(timezone.utc)
        if path is None:
            path = Path(self.environment.cwd) / f"forge-dump-{now.strftime('%Y%m%d-%H%M%S')}.json"
        path = Path(path)

        payload = {
            "dumped_at": now.isoformat(),
            "mode": self.mode.mode.value,
            "instances": [
                {
                    "key": str(key),
                    "agent": instance.agent_id,
                    "generation": key.generation,
                    "status": instance.status.value,
                    "created_at": instance.created_at.isoformat(),
                    "conversation": instance.conversation.to_dicts(),
                }
                for key, instance in self._instances.items()
            ],
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        logger.info(f"Dumped {len(self._instances)} conversation(s) to {path}")
        return path

    def info(self) -> dict[str, Any]:
        """Session summary for ``/info``."""
        return {
            "environment": asdict(self.environment),
            "provider": self.client.provider_name or type(self.client).__name__,
            "model": self.client.model,
            "mode": self.mode.mode.value,
            "max_dispatch_depth": self.max_dispatch_depth,
            "agents": [agent.id for agent in self.workflow.agents if agent.enable],
            "instances": [
                {
                    "key": str(key),
                    "status": instance.status.value,
                    "messages": len(instance.conversation),
                    "pending_events": self.bus.pending(key),
                }
                for key, instance in self._instances.items()
            ],
        }

    async def models(self) -> list[str]:
        """Models offered by the provider (``/models``)."""
        return await self.client.list_models()

    async def wait_idle(self) -> None:
        """Wait until every delivered event has been fully processed."""
        await self._idle.wait()

    async def shutdown(self) -> None:
        """Cancel every worker and turn; pending mailbox entries are dropped."""
        self._closed = True
        tasks = list(self._workers.values()) + list(self._turns.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        dropped = self.bus.clear()
        if dropped:
            logger.info(f"Shutdown dropped {dropped} pending event(s)")
        self._instances.clear()
        self._workers.clear()
        self._turns.clear()
        self._unsettled = 0
        self._idle.set()
