"""In-memory publish/subscribe routing with per-instance mailboxes.

Every agent instance owns one FIFO mailbox. Publishing never awaits: it
appends to the subscribers' mailboxes and returns. All mutation happens
on the event loop thread and ``publish`` contains no suspension point,
so concurrent publishers are serialized by the loop itself.
"""

import asyncio
from collections import defaultdict
from typing import Callable

from .exceptions import UnknownEventError
from .logging import get_logger
from .types import Event, InstanceKey
from .workflow.models import AgentDefinition, Workflow

logger = get_logger(__name__)

MailboxCallback = Callable[[InstanceKey, AgentDefinition, "asyncio.Queue[Event]"], None]


class EventBus:
    """Route events to the mailboxes of subscribing agent instances.

    Persistent agents always map to generation 0. Ephemeral agents get a
    fresh generation, and therefore a fresh mailbox, on every publish.

    Args:
        workflow: Topology providing subscriptions in declaration order
        on_new_mailbox: Called whenever a mailbox is created, so the owner
            can start the instance that drains it
    """

    def __init__(self, workflow: Workflow, on_new_mailbox: MailboxCallback | None = None):
        self.workflow = workflow
        self.on_new_mailbox = on_new_mailbox
        self._mailboxes: dict[InstanceKey, asyncio.Queue[Event]] = {}
        self._generations: dict[str, int] = defaultdict(int)

    def subscribers_of(self, event_name: str) -> list[AgentDefinition]:
        """Enabled subscribers in ``Workflow.agents`` declaration order."""
        return self.workflow.subscribers_of(event_name)

    def _key_for(self, definition: AgentDefinition) -> InstanceKey:
        if not definition.ephemeral:
            return InstanceKey(definition.id, 0)
        self._generations[definition.id] += 1
        return InstanceKey(definition.id, self._generations[definition.id])

    def _mailbox_for(self, definition: AgentDefinition) -> tuple[InstanceKey, "asyncio.Queue[Event]"]:
        key = self._key_for(definition)
        mailbox = self._mailboxes.get(key)
        if mailbox is None:
            mailbox = asyncio.Queue()
            self._mailboxes[key] = mailbox
            logger.debug(f"Created mailbox for {key}")
            if self.on_new_mailbox is not None:
                self.on_new_mailbox(key, definition, mailbox)
        return key, mailbox

    def publish(self, event: Event) -> list[InstanceKey]:
        """Enqueue an event for every subscriber.

        Returns:
            Keys of the instances whose mailbox received the event; empty
            when nobody subscribes (logged, not raised).
        """
        subscribers = self.subscribers_of(event.name)
        if not subscribers:
            logger.warning(str(UnknownEventError(event.name)))
            return []

        delivered: list[InstanceKey] = []
        for definition in subscribers:
            key, mailbox = self._mailbox_for(definition)
            mailbox.put_nowait(event)
            delivered.append(key)
        logger.debug(f"Published '{event.name}' (depth {event.depth}) to {[str(k) for k in delivered]}")
        return delivered

    def mailbox(self, key: InstanceKey) -> "asyncio.Queue[Event] | None":
        return self._mailboxes.get(key)

    def mailboxes(self) -> dict[InstanceKey, "asyncio.Queue[Event]"]:
        return dict(self._mailboxes)

    def pending(self, key: InstanceKey) -> int:
        mailbox = self._mailboxes.get(key)
        return mailbox.qsize() if mailbox is not None else 0

    def close_mailbox(self, key: InstanceKey) -> int:
        """Forget a mailbox; returns how many queued events were dropped."""
        mailbox = self._mailboxes.pop(key, None)
        if mailbox is None:
            return 0
        dropped = mailbox.qsize()
        if dropped:
            logger.debug(f"Dropped {dropped} pending event(s) for {key}")
        return dropped

    def clear(self) -> int:
        """Forget every mailbox, dropping pending events."""
        return sum(self.close_mailbox(key) for key in list(self._mailboxes))
