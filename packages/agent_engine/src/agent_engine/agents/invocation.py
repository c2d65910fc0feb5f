"""Mutable state of one agent run and its place in the invocation tree."""

from __future__ import annotations

import weakref
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from agent_engine.errors import InvalidStateTransition, SpawnUnavailableError
from agent_engine.models.context import EMPTY_CONTEXT, PackedContext
from agent_engine.models.messages import ChatMessage, Role

if TYPE_CHECKING:
    from agent_engine.models.agents import AgentDefinition, AgentInvocationOptions
    from agent_engine.tools.registry import ToolRegistry, ToolRegistryFactory

SpawnHandler = Callable[["AgentDefinition", "AgentInvocationOptions"], Awaitable["AgentInvocation"]]


class InvocationState(StrEnum):
    """Lifecycle states of an invocation."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[InvocationState, frozenset[InvocationState]] = {
    InvocationState.CREATED: frozenset({InvocationState.RUNNING, InvocationState.FAILED}),
    InvocationState.RUNNING: frozenset({InvocationState.COMPLETED, InvocationState.FAILED}),
    InvocationState.COMPLETED: frozenset(),
    InvocationState.FAILED: frozenset(),
}


def compose_prompt_content(prompt: str, context: PackedContext) -> str:
    """Append the packed workspace context to the user prompt when present."""
    context_text = context.text.strip()
    if context_text:
        return f"{prompt}\n\n<workspace_context>\n{context_text}\n</workspace_context>"
    return prompt


class AgentInvocation:
    """One agent's transcript, tools and lineage.

    The parent is held weakly; children are owned strongly in spawn order.
    Depth and parent id are fixed at construction so they stay valid even if
    the parent is released first.
    """

    def __init__(
        self,
        definition: AgentDefinition,
        options: AgentInvocationOptions,
        tool_registry_factory: ToolRegistryFactory,
        parent: AgentInvocation | None = None,
        *,
        prompt_role: Role = "user",
    ) -> None:
        self.definition = definition
        self.prompt = options.prompt
        self.context: PackedContext = options.context or definition.context or EMPTY_CONTEXT
        self.history: list[ChatMessage] = [ChatMessage.from_value(item) for item in options.history]
        self.tool_registry: ToolRegistry = tool_registry_factory.create(definition.tools)
        self.children: list[AgentInvocation] = []
        self.messages: list[ChatMessage] = [
            ChatMessage(role="system", content=definition.system_prompt),
            *(message.copy() for message in self.history),
            ChatMessage(role=prompt_role, content=compose_prompt_content(options.prompt, self.context)),
        ]
        self.state = InvocationState.CREATED
        self.error: dict[str, Any] | None = None
        self.runtime: dict[str, Any] | None = None
        self._parent_ref: weakref.ReferenceType[AgentInvocation] | None = (
            weakref.ref(parent) if parent is not None else None
        )
        self._parent_id = parent.id if parent is not None else None
        self._depth = parent.depth + 1 if parent is not None else 0
        self._spawn_handler: SpawnHandler | None = None

    def __repr__(self) -> str:
        return f"AgentInvocation(id={self.id!r}, depth={self.depth}, state={self.state.value})"

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def parent(self) -> AgentInvocation | None:
        """Return the spawning invocation, or None for roots and released parents."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def parent_id(self) -> str | None:
        return self._parent_id

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def is_root(self) -> bool:
        return self._parent_ref is None

    @property
    def failed(self) -> bool:
        return self.state is InvocationState.FAILED

    def add_child(self, child: AgentInvocation) -> None:
        self.children.append(child)

    def set_spawn_handler(self, handler: SpawnHandler) -> None:
        """Bind the capability used by :meth:`spawn`."""
        self._spawn_handler = handler

    def set_runtime(self, provider: str, model: str, metadata: dict[str, Any] | None = None) -> None:
        self.runtime = {"provider": provider, "model": model, "metadata": metadata or {}}

    def transition(self, target: InvocationState) -> None:
        """Move to ``target``; raise ``InvalidStateTransition`` when not allowed."""
        if target not in _TRANSITIONS[self.state]:
            message = f"Invocation {self.id} cannot move from {self.state.value} to {target.value}"
            raise InvalidStateTransition(message)
        self.state = target

    def mark_failed(self, error: dict[str, Any] | None = None) -> None:
        """Record a failure; repeated calls keep the first error."""
        if self.state is not InvocationState.FAILED:
            self.transition(InvocationState.FAILED)
        if self.error is None and error is not None:
            self.error = error

    async def spawn(self, definition: AgentDefinition, options: AgentInvocationOptions) -> AgentInvocation:
        """Create and fully run a child through the bound spawn handler."""
        if self._spawn_handler is None:
            message = "This agent cannot spawn subagents without an orchestrator binding."
            raise SpawnUnavailableError(message)
        return await self._spawn_handler(definition, options)
