"""Engine entry point: one session from prompt to finished invocation tree.

A run emits ``sessionStart`` -> ``beforeContextPack`` -> ``afterContextPack``
-> ``userPromptSubmit`` before handing the manager agent to the orchestrator.
A block or listener failure in any of these aborts the session. Once the
agent tree finishes, or fails, ``sessionEnd`` is dispatched with the status,
duration and a result summary.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from agent_engine.agents.factory import AgentInvocationFactory
from agent_engine.agents.orchestrator import AgentOrchestrator
from agent_engine.agents.runtime import AgentRunRequest, AgentRuntimeOptions, ConfirmCallback, deny_all
from agent_engine.compaction.models import TranscriptCompactionSettings
from agent_engine.compaction.registry import parse_compactor_config
from agent_engine.compaction.service import TranscriptCompactionService
from agent_engine.context.config import ContextConfig
from agent_engine.context.packer import ContextPacker
from agent_engine.errors import HookBlockedError, HookDispatchError, serialize_error
from agent_engine.hooks.bus import HookBus
from agent_engine.hooks.events import HookEvent
from agent_engine.hooks.loader import HooksLoader
from agent_engine.io.logging import bind_session_id, install_session_log_filter, reset_session_id
from agent_engine.models.context import EMPTY_CONTEXT, PackedContext
from agent_engine.models.messages import ChatMessage
from agent_engine.models.settings import Settings
from agent_engine.utils import utc_timestamp

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.compaction.models import TranscriptCompactorSelector
    from agent_engine.hooks.bus import HookDispatchResult
    from agent_engine.io.renderer import StreamRenderer
    from agent_engine.models.agents import AgentRuntimeCatalog, AgentRuntimeDescriptor

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    """Outcome of one engine run."""

    messages: list[ChatMessage]
    context: PackedContext
    trace_path: str | None
    agents: list[AgentInvocation] = field(default_factory=list)
    session_id: str | None = None


def _check_dispatch(event: HookEvent, dispatch: HookDispatchResult, *, allow_block: bool = True) -> None:
    if dispatch.error is not None:
        logger.error('Hook "%s" failed: %s', event.value, dispatch.error)
        raise HookDispatchError(event.value, dispatch.error) from dispatch.error
    if allow_block and dispatch.blocked is not None:
        reason = dispatch.blocked.reason
        logger.warning('Hook "%s" blocked the session: %s', event.value, reason or "no reason given")
        raise HookBlockedError(event.value, reason)


class DelegationDisabledCatalog:
    """Catalog view that hides the spawn tool while keeping agent lookup."""

    def __init__(self, catalog: AgentRuntimeCatalog) -> None:
        self._catalog = catalog

    @property
    def enable_subagents(self) -> bool:
        return False

    def get_manager(self) -> AgentRuntimeDescriptor:
        return self._catalog.get_manager()

    def get_agent(self, agent_id: str) -> AgentRuntimeDescriptor | None:
        return self._catalog.get_agent(agent_id)

    def get_subagent(self, agent_id: str) -> AgentRuntimeDescriptor | None:
        return self._catalog.get_subagent(agent_id)

    def list_subagents(self) -> list[AgentRuntimeDescriptor]:
        return self._catalog.list_subagents()


def compaction_settings_from(settings: Settings) -> TranscriptCompactionSettings:
    """Global compactor config derived from flat ``Settings`` fields."""
    if settings.compactor is None:
        return TranscriptCompactionSettings()
    if settings.compactor == "token_budget":
        raw: dict[str, Any] = {
            "strategy": "token_budget",
            "token_budget": settings.compactor_token_budget,
            "keep_tail": settings.compactor_keep_tail,
        }
    else:
        raw = {"strategy": settings.compactor}
        if settings.summarizer_url:
            raw["http"] = {"url": settings.summarizer_url}
    return TranscriptCompactionSettings(global_config=parse_compactor_config(raw))


class AgentEngine:
    """Run a manager agent for a prompt with hooks, context packing and tracing."""

    def __init__(
        self,
        orchestrator: AgentOrchestrator | None = None,
        context_packer: ContextPacker | None = None,
        hooks_loader: HooksLoader | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.orchestrator = orchestrator or AgentOrchestrator(
            AgentInvocationFactory(),
            compaction_service=TranscriptCompactionService(lambda: compaction_settings_from(self.settings)),
        )
        self.context_packer = context_packer or ContextPacker()
        self.hooks_loader = hooks_loader or HooksLoader()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        stream_renderer: StreamRenderer | None = None,
    ) -> AgentEngine:
        """Build an engine whose defaults come from ``settings``."""
        logging.getLogger("agent_engine").setLevel(settings.log_level)
        install_session_log_filter()
        orchestrator = AgentOrchestrator(
            AgentInvocationFactory(),
            stream_renderer,
            compaction_service=TranscriptCompactionService(lambda: compaction_settings_from(settings)),
        )
        return cls(orchestrator=orchestrator, settings=settings)

    def default_context_config(self) -> ContextConfig:
        return ContextConfig(
            base_dir=self.settings.context_base_dir,
            include=list(self.settings.context_include),
            exclude=list(self.settings.context_exclude),
            max_bytes=self.settings.context_max_bytes,
            max_files=self.settings.context_max_files,
        )

    async def run(
        self,
        prompt: str,
        catalog: AgentRuntimeCatalog,
        *,
        hooks: HookBus | None = None,
        hook_modules: Sequence[str] | None = None,
        context_config: ContextConfig | None = None,
        pack_context: bool = True,
        history: Sequence[ChatMessage | Mapping[str, Any]] | None = None,
        trace_path: str | Path | None = None,
        trace_append: bool | None = None,
        confirm: ConfirmCallback = deny_all,
        cwd: str | None = None,
        transcript_compactor: TranscriptCompactorSelector | None = None,
    ) -> EngineResult:
        """Run ``prompt`` through the catalog's manager agent."""
        started = time.monotonic()
        session_id = str(uuid.uuid4())
        token = bind_session_id(session_id)
        bus = hooks or HookBus()
        if not self.settings.enable_subagents:
            catalog = DelegationDisabledCatalog(catalog)
        history_messages = [ChatMessage.from_value(item) for item in history or ()]
        manager = catalog.get_manager()
        resolved_trace = str(trace_path) if trace_path is not None else self.settings.trace_path
        session = {
            "id": session_id,
            "started_at": utc_timestamp(),
            "prompt": prompt,
            "provider": manager.provider.name,
            "model": manager.model,
            "trace_path": resolved_trace,
        }
        result: EngineResult | None = None
        failure: BaseException | None = None
        session_started = False

        try:
            modules = list(hook_modules) if hook_modules is not None else list(self.settings.hook_modules)
            if modules:
                await self.hooks_loader.load(bus, modules)

            session_started = True
            _check_dispatch(
                HookEvent.SESSION_START,
                await bus.emit_async(HookEvent.SESSION_START, {"metadata": session}),
            )

            config = context_config or self.default_context_config()
            _check_dispatch(
                HookEvent.BEFORE_CONTEXT_PACK,
                await bus.emit_async(HookEvent.BEFORE_CONTEXT_PACK, {"config": config}),
            )
            context = self.context_packer.pack(config) if pack_context else EMPTY_CONTEXT
            logger.debug(
                "Packed context",
                extra={"total_bytes": context.total_bytes, "file_count": len(context.files)},
            )
            _check_dispatch(
                HookEvent.AFTER_CONTEXT_PACK,
                await bus.emit_async(HookEvent.AFTER_CONTEXT_PACK, {"context": context}),
            )

            runtime = AgentRuntimeOptions(
                catalog=catalog,
                hooks=bus,
                confirm=confirm,
                cwd=cwd or config.base_dir,
                logger=logging.getLogger("agent_engine.run"),
                trace_path=resolved_trace,
                session_id=session_id,
                trace_append=self.settings.trace_append if trace_append is None else trace_append,
                transcript_compactor=transcript_compactor,
            )

            _check_dispatch(
                HookEvent.USER_PROMPT_SUBMIT,
                await bus.emit_async(
                    HookEvent.USER_PROMPT_SUBMIT,
                    {"metadata": session, "prompt": prompt, "history_length": len(history_messages)},
                ),
            )

            bus.set_agent_runner(lambda options: self._run_auxiliary_agent(runtime, context, options))
            root = await self.orchestrator.run_agent(
                AgentRunRequest(
                    definition=manager.definition,
                    prompt=prompt,
                    context=context,
                    history=history_messages,
                ),
                runtime,
            )
            result = EngineResult(
                messages=root.messages,
                context=context,
                trace_path=resolved_trace,
                agents=self.orchestrator.collect_invocations(root),
                session_id=session_id,
            )
            return result
        except BaseException as exc:
            failure = exc
            raise
        finally:
            bus.clear_agent_runner()
            try:
                if session_started:
                    await self._emit_session_end(bus, session, started, result, failure)
            finally:
                reset_session_id(token)

    async def _emit_session_end(
        self,
        bus: HookBus,
        session: dict[str, Any],
        started: float,
        result: EngineResult | None,
        failure: BaseException | None,
    ) -> None:
        payload: dict[str, Any] = {
            "metadata": session,
            "status": "error" if failure is not None else "success",
            "duration_ms": int((time.monotonic() - started) * 1000),
            "result": None,
            "error": serialize_error(failure) if failure is not None else None,
        }
        if result is not None:
            payload["result"] = {
                "message_count": len(result.messages),
                "agent_count": len(result.agents),
                "context_bytes": result.context.total_bytes,
            }
        dispatch = await bus.emit_async(HookEvent.SESSION_END, payload)
        if dispatch.error is not None:
            if failure is not None:
                logger.error('Hook "%s" failed after session error: %s', HookEvent.SESSION_END.value, dispatch.error)
                return
            _check_dispatch(HookEvent.SESSION_END, dispatch, allow_block=False)

    async def _run_auxiliary_agent(
        self,
        runtime: AgentRuntimeOptions,
        context: PackedContext,
        options: Mapping[str, Any],
    ) -> AgentInvocation:
        """Run a catalog agent on behalf of a hook, outside the main tree."""
        agent_id = options.get("agent_id")
        descriptor = runtime.catalog.get_agent(agent_id) if agent_id else runtime.catalog.get_manager()
        if descriptor is None:
            message = f"Unknown agent requested by hook: {agent_id}"
            raise LookupError(message)
        return await self.orchestrator.run_agent(
            AgentRunRequest(
                definition=descriptor.definition,
                prompt=str(options.get("prompt", "")),
                context=options.get("context") or context,
                history=[ChatMessage.from_value(item) for item in options.get("history") or ()],
                variables=dict(options.get("variables") or {}),
            ),
            runtime,
        )
