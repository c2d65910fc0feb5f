"""Per-agent compactor selection and the plan/apply step of the run loop."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from agent_engine.compaction.models import (
    TranscriptCompactionResult,
    TranscriptCompactionSettings,
    TranscriptCompactor,
    TranscriptCompactorSelector,
)
from agent_engine.compaction.registry import CompactorRegistry, create_default_registry
from agent_engine.hooks.events import HookEvent
from agent_engine.utils import maybe_await

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.hooks.bus import HookBus
    from agent_engine.hooks.events import AgentLifecyclePayload
    from agent_engine.models.agents import AgentRuntimeDescriptor

logger = logging.getLogger(__name__)

GLOBAL_AGENT_ID = "__global__"

SettingsLoader = Callable[[], TranscriptCompactionSettings]


@dataclass
class _CachedCompactor:
    signature: str
    compactor: TranscriptCompactor


class TranscriptCompactionService:
    """Resolve a compactor per agent and run its plan before model calls.

    Compactors built from settings are cached per agent and rebuilt only when
    that agent's config changes.
    """

    def __init__(
        self,
        load_settings: SettingsLoader | None = None,
        registry: CompactorRegistry | None = None,
    ) -> None:
        self._load_settings = load_settings or TranscriptCompactionSettings
        self._registry = registry or create_default_registry()
        self._cache: dict[str, _CachedCompactor] = {}

    def select_for(
        self,
        invocation: AgentInvocation,
        descriptor: AgentRuntimeDescriptor | None = None,
    ) -> TranscriptCompactor | None:
        """Return the per-agent compactor, falling back to the global one."""
        settings = self._load_settings()
        agent_id = descriptor.id if descriptor is not None else invocation.definition.id
        agent_config = settings.agents.get(agent_id)
        if agent_config is not None:
            return self._get_or_create(agent_id, agent_config)
        if settings.global_config is not None:
            return self._get_or_create(GLOBAL_AGENT_ID, settings.global_config)
        return None

    async def plan_and_apply(
        self,
        *,
        invocation: AgentInvocation,
        descriptor: AgentRuntimeDescriptor,
        iteration: int,
        lifecycle: AgentLifecyclePayload,
        hooks: HookBus,
        selector: TranscriptCompactorSelector | None = None,
        run_logger: logging.Logger | None = None,
    ) -> TranscriptCompactionResult | None:
        """Plan compaction; when a plan exists emit ``preCompact`` then apply it."""
        compactor = self._resolve(selector, invocation, descriptor)
        if compactor is None:
            return None
        plan = await maybe_await(compactor.plan(invocation, iteration))
        if plan is None:
            return None

        await hooks.emit_async(
            HookEvent.PRE_COMPACT,
            {**lifecycle, "iteration": iteration, "messages": invocation.messages, "reason": plan.reason},
        )
        result = await maybe_await(plan.apply())
        if isinstance(result, TranscriptCompactionResult):
            (run_logger or logger).debug(
                "Transcript compacted",
                extra={
                    "agent": invocation.id,
                    "removed_messages": result.removed_messages,
                    "reason": plan.reason,
                },
            )
            return result
        return None

    def _resolve(
        self,
        selector: TranscriptCompactorSelector | None,
        invocation: AgentInvocation,
        descriptor: AgentRuntimeDescriptor,
    ) -> TranscriptCompactor | None:
        if selector is None:
            return self.select_for(invocation, descriptor)
        if hasattr(selector, "plan"):
            return selector
        return selector(invocation, descriptor)

    def _get_or_create(self, agent_id: str, config: Any) -> TranscriptCompactor:
        signature = json.dumps(config.model_dump(mode="json"), sort_keys=True)
        cached = self._cache.get(agent_id)
        if cached is not None and cached.signature == signature:
            return cached.compactor
        compactor = self._registry.create(config, agent_id)
        self._cache[agent_id] = _CachedCompactor(signature=signature, compactor=compactor)
        return compactor
