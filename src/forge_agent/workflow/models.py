"""Pydantic models for the workflow document.

Models are frozen: a ``Workflow`` is built once per session and only read
afterwards.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

from ..types import ToolName

EVENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]+$")


class AgentDefinition(BaseModel):
    """One agent of the topology.

    ``tools`` accepts bare capability names (``fs_read``) or wire names
    (``tool_forge_fs_read``). Unknown keys are rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    model: str | None = None
    tools: tuple[ToolName, ...] = ()
    subscribe: tuple[str, ...] = ()
    ephemeral: bool = False
    tool_supported: bool = True
    system_prompt: str | None = None
    user_prompt: str | None = None
    project_rules: str | None = None
    enable: bool = True
    max_turns: int | None = Field(default=None, ge=1)

    @field_validator("tools", mode="before")
    @classmethod
    def _parse_tools(cls, value: Any) -> Any:
        if value is None:
            return ()
        if not isinstance(value, (list, tuple, set, frozenset)):
            return value
        tools: list[ToolName] = []
        for token in value:
            if isinstance(token, ToolName):
                name = token
            else:
                try:
                    name = ToolName.from_token(str(token))
                except ValueError:
                    raise PydanticCustomError(
                        "unknown_tool", "unknown tool '{token}'", {"token": str(token)}
                    )
            if name not in tools:
                tools.append(name)
        return tuple(tools)

    @field_validator("subscribe", mode="before")
    @classmethod
    def _parse_subscribe(cls, value: Any) -> Any:
        if value is None:
            return ()
        if not isinstance(value, (list, tuple)):
            return value
        events: list[str] = []
        for token in value:
            token = str(token)
            if not EVENT_NAME_PATTERN.match(token):
                raise PydanticCustomError(
                    "invalid_event", "invalid event name '{token}'", {"token": token}
                )
            if token not in events:
                events.append(token)
        return tuple(events)

    @property
    def is_reachable(self) -> bool:
        return self.enable and bool(self.subscribe)

    def subscribes_to(self, event_name: str) -> bool:
        return self.enable and event_name in self.subscribe


class Workflow(BaseModel):
    """The resolved agent topology, variables and templates of a session.

    Unknown top-level keys are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    variables: dict[str, Any] = Field(default_factory=dict)
    agents: tuple[AgentDefinition, ...] = ()
    templates: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self) -> "Workflow":
        seen: set[str] = set()
        for agent in self.agents:
            if agent.id in seen:
                raise PydanticCustomError(
                    "duplicate_agent", "duplicate agent id '{token}'", {"token": agent.id}
                )
            seen.add(agent.id)

            for ref in (agent.system_prompt, agent.user_prompt):
                if ref is not None and ref not in self.templates:
                    raise PydanticCustomError(
                        "unknown_template",
                        "agent '{agent}' references unknown template '{token}'",
                        {"agent": agent.id, "token": ref},
                    )
        return self

    def get_agent(self, agent_id: str) -> AgentDefinition | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def subscribers_of(self, event_name: str) -> list[AgentDefinition]:
        """Enabled agents subscribed to an event, in declaration order."""
        return [agent for agent in self.agents if agent.subscribes_to(event_name)]

    @property
    def event_names(self) -> set[str]:
        return {event for agent in self.agents if agent.enable for event in agent.subscribe}
