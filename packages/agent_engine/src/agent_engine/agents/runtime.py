"""Run-scoped options shared by every invocation in one engine run."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agent_engine.models.agents import AgentDefinition, AgentInvocationOptions

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.compaction.models import TranscriptCompactorSelector
    from agent_engine.hooks.bus import HookBus
    from agent_engine.models.agents import AgentRuntimeCatalog

ConfirmCallback = Callable[[str], Awaitable[bool]]


async def deny_all(_message: str) -> bool:
    """Confirmation callback for non-interactive runs."""
    return False


@dataclass(frozen=True)
class AgentRuntimeOptions:
    """Immutable runtime capabilities; never mutated after a run starts."""

    catalog: AgentRuntimeCatalog
    hooks: HookBus
    confirm: ConfirmCallback = deny_all
    cwd: str = "."
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("agent_engine.run"))
    trace_path: str | None = None
    session_id: str | None = None
    trace_append: bool = True
    transcript_compactor: TranscriptCompactorSelector | None = None


@dataclass(kw_only=True)
class AgentRunRequest(AgentInvocationOptions):
    """Options for running an agent, plus its definition and optional parent."""

    definition: AgentDefinition
    parent: AgentInvocation | None = None
