"""Append-only JSON Lines log of published events and conversation messages."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .logging import get_logger
from .types import Event, InstanceKey, Message

logger = get_logger(__name__)


class EventLog:
    """Write one JSON object per line; the log is never read back.

    Example:
        log = EventLog("forge.log.jsonl")
        log.record_event(Event(name="user_task_init", value="fix the tests"))
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _append(self, record: dict[str, Any]) -> None:
        record.setdefault("logged_at", datetime.now(timezone.utc).isoformat())
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to append to event log {self.path}: {e}")

    def record_event(self, event: Event) -> None:
        self._append({"kind": "event", **event.to_dict()})

    def record_message(self, key: InstanceKey, message: Message) -> None:
        self._append({"kind": "message", "agent": key.agent_id, "generation": key.generation, **message.to_dict()})
