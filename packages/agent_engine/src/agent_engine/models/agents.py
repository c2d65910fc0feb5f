"""Agent definitions and the runtime catalog the engine resolves them from."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel

from agent_engine.errors import UnknownSubagentError

if TYPE_CHECKING:
    from agent_engine.models.context import PackedContext
    from agent_engine.models.messages import ChatMessage
    from agent_engine.streaming import ProviderAdapter
    from agent_engine.templates.renderer import TemplateDescriptor
    from agent_engine.tools.registry import ToolDefinition


@dataclass(frozen=True)
class AgentDefinition:
    """Immutable agent configuration authored by config or callers."""

    id: str
    system_prompt: str
    system_prompt_template: TemplateDescriptor | None = None
    user_prompt_template: TemplateDescriptor | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    context: PackedContext | None = None
    tools: tuple[ToolDefinition, ...] = ()


@dataclass
class AgentInvocationOptions:
    """Per-run inputs for one invocation."""

    prompt: str
    context: PackedContext | None = None
    history: list[ChatMessage] = field(default_factory=list)
    prompt_template: TemplateDescriptor | None = None
    variables: dict[str, Any] = field(default_factory=dict)


class AgentRuntimeMetadata(BaseModel, frozen=True):
    """Descriptive metadata attached to a runtime descriptor."""

    name: str | None = None
    description: str | None = None
    routing_threshold: float | None = None
    profile_id: str | None = None


@dataclass(frozen=True)
class AgentRuntimeDescriptor:
    """Binds an agent definition to the model and provider that run it."""

    id: str
    definition: AgentDefinition
    model: str
    provider: ProviderAdapter
    metadata: AgentRuntimeMetadata | None = None


class AgentRuntimeCatalog(Protocol):
    """Lookup surface for the manager agent and its subagents."""

    @property
    def enable_subagents(self) -> bool: ...

    def get_manager(self) -> AgentRuntimeDescriptor: ...

    def get_agent(self, agent_id: str) -> AgentRuntimeDescriptor | None: ...

    def get_subagent(self, agent_id: str) -> AgentRuntimeDescriptor | None: ...

    def list_subagents(self) -> list[AgentRuntimeDescriptor]: ...


class AgentCatalog:
    """In-memory catalog built from a manager descriptor and its subagents."""

    def __init__(
        self,
        manager: AgentRuntimeDescriptor,
        subagents: Iterable[AgentRuntimeDescriptor] = (),
        *,
        enable_subagents: bool = True,
    ) -> None:
        self._manager = manager
        self._subagents: dict[str, AgentRuntimeDescriptor] = {}
        for descriptor in subagents:
            if descriptor.id == manager.id or descriptor.id in self._subagents:
                msg = f"Duplicate agent id in catalog: {descriptor.id}"
                raise ValueError(msg)
            self._subagents[descriptor.id] = descriptor
        self._enable_subagents = enable_subagents

    @property
    def enable_subagents(self) -> bool:
        return self._enable_subagents

    def get_manager(self) -> AgentRuntimeDescriptor:
        return self._manager

    def get_agent(self, agent_id: str) -> AgentRuntimeDescriptor | None:
        if agent_id == self._manager.id:
            return self._manager
        return self._subagents.get(agent_id)

    def get_subagent(self, agent_id: str) -> AgentRuntimeDescriptor | None:
        return self._subagents.get(agent_id)

    def require_subagent(self, agent_id: str) -> AgentRuntimeDescriptor:
        """Return a subagent descriptor or raise ``UnknownSubagentError``."""
        descriptor = self._subagents.get(agent_id)
        if descriptor is None:
            msg = f"Unknown subagent: {agent_id}"
            raise UnknownSubagentError(msg)
        return descriptor

    def list_subagents(self) -> list[AgentRuntimeDescriptor]:
        return list(self._subagents.values())
