"""Agent orchestration: create invocations, bind runtimes and drive the run loop.

Root runs enter through :meth:`AgentOrchestrator.run_agent`; delegations enter
through :meth:`AgentOrchestrator.spawn_sub_agent`. Both converge on
:meth:`AgentOrchestrator.execute_invocation`, which builds an
:class:`~agent_engine.agents.runner.AgentRunner` with callbacks bound to the
invocation and its runtime.
"""

from __future__ import annotations

import logging
import weakref
from collections import deque
from typing import TYPE_CHECKING, Any

from agent_engine.agents.runner import AgentRunner, AgentRunnerOptions
from agent_engine.agents.spawn import (
    SpawnToolArguments,
    apply_spawn_overrides,
    blocked_spawn_result,
    build_spawn_result,
    build_spawn_tool_schema,
    parse_spawn_arguments,
)
from agent_engine.errors import HookDispatchError, SpawnUnavailableError, UnknownSubagentError
from agent_engine.hooks.events import HookEvent
from agent_engine.io.renderer import NullStreamRenderer, StreamRenderer
from agent_engine.io.trace import JsonlTraceWriter
from agent_engine.models.agents import AgentInvocationOptions
from agent_engine.utils import maybe_await, utc_timestamp

if TYPE_CHECKING:
    from agent_engine.agents.factory import AgentInvocationFactory
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.agents.runtime import AgentRunRequest, AgentRuntimeOptions
    from agent_engine.compaction.service import TranscriptCompactionService
    from agent_engine.hooks.bus import HookDispatchResult
    from agent_engine.hooks.events import AgentLifecyclePayload, AgentMetadata
    from agent_engine.models.agents import AgentDefinition, AgentRuntimeDescriptor
    from agent_engine.streaming import ToolCallEvent
    from agent_engine.tools.registry import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_SPAWN_BLOCK_REASON = "Subagent delegation blocked by hook."


def _target_summary(descriptor: AgentRuntimeDescriptor) -> dict[str, Any]:
    return {
        "id": descriptor.id,
        "model": descriptor.model,
        "provider": descriptor.provider.name,
        "metadata": descriptor.metadata.model_dump() if descriptor.metadata is not None else None,
    }


class AgentOrchestrator:
    """Run invocation trees against a shared runtime.

    Runtimes and descriptors are tracked per invocation with weak keys, so the
    orchestrator never keeps a finished tree alive.
    """

    def __init__(
        self,
        invocation_factory: AgentInvocationFactory,
        stream_renderer: StreamRenderer | None = None,
        trace_writer: JsonlTraceWriter | None = None,
        compaction_service: TranscriptCompactionService | None = None,
    ) -> None:
        self._invocation_factory = invocation_factory
        self._stream_renderer = stream_renderer or NullStreamRenderer()
        self._trace_writer = trace_writer or JsonlTraceWriter()
        self._compaction_service = compaction_service
        self._runtimes: weakref.WeakKeyDictionary[AgentInvocation, AgentRuntimeOptions] = (
            weakref.WeakKeyDictionary()
        )
        self._descriptors: weakref.WeakKeyDictionary[AgentInvocation, AgentRuntimeDescriptor] = (
            weakref.WeakKeyDictionary()
        )

    def set_stream_renderer(self, stream_renderer: StreamRenderer) -> None:
        self._stream_renderer = stream_renderer

    async def run_agent(self, request: AgentRunRequest, runtime: AgentRuntimeOptions) -> AgentInvocation:
        """Create an invocation for ``request`` and run it to completion."""
        invocation = self._invocation_factory.create(
            request.definition,
            AgentInvocationOptions(
                prompt=request.prompt,
                context=request.context,
                history=request.history,
                prompt_template=request.prompt_template,
                variables=request.variables,
            ),
            request.parent,
        )
        if request.parent is not None:
            request.parent.add_child(invocation)
        self._bind(invocation, runtime)
        await self.execute_invocation(invocation)
        return invocation

    async def spawn_sub_agent(
        self,
        parent: AgentInvocation,
        definition: AgentDefinition,
        options: AgentInvocationOptions,
    ) -> AgentInvocation:
        """Create a child of ``parent`` and run it before returning."""
        runtime = self._runtimes.get(parent)
        if runtime is None:
            message = f"Unable to spawn subagent for {parent.id}; runtime context missing."
            raise SpawnUnavailableError(message)
        invocation = self._invocation_factory.create(definition, options, parent)
        logger.debug("Spawning %s under %s at depth %d", invocation.id, parent.id, invocation.depth)
        parent.add_child(invocation)
        self._bind(invocation, runtime)
        await self.execute_invocation(invocation)
        return invocation

    def collect_invocations(self, root: AgentInvocation) -> list[AgentInvocation]:
        """Return ``root`` and its descendants in breadth-first order."""
        queue: deque[AgentInvocation] = deque([root])
        result: list[AgentInvocation] = []
        while queue:
            current = queue.popleft()
            result.append(current)
            queue.extend(current.children)
        return result

    async def execute_invocation(self, invocation: AgentInvocation) -> AgentInvocation:
        runtime = self._require_runtime(invocation)
        descriptor = self.get_descriptor(invocation)
        runner = AgentRunner(
            AgentRunnerOptions(
                invocation=invocation,
                descriptor=descriptor,
                runtime=runtime,
                stream_renderer=self._stream_renderer,
                lifecycle=lambda: self.create_lifecycle_payload(invocation),
                write_trace=lambda phase, data, append: self.write_trace(
                    runtime, invocation, phase, data, append=append
                ),
                dispatch_hook_or_throw=lambda event, payload: self.dispatch_hook_or_throw(
                    runtime, invocation, event, payload
                ),
                compose_tool_schemas=lambda: self.compose_tool_schemas(invocation, runtime),
                execute_spawn_tool=lambda event: self._execute_spawn_tool(
                    invocation, runtime, event, descriptor
                ),
                compaction_service=self._compaction_service,
            )
        )
        return await runner.run()

    def get_descriptor(self, invocation: AgentInvocation) -> AgentRuntimeDescriptor:
        descriptor = self._descriptors.get(invocation)
        if descriptor is None:
            message = f"No runtime descriptor registered for agent {invocation.definition.id}"
            raise LookupError(message)
        return descriptor

    def _bind(self, invocation: AgentInvocation, runtime: AgentRuntimeOptions) -> None:
        async def spawn_handler(definition: AgentDefinition, options: AgentInvocationOptions) -> AgentInvocation:
            return await self.spawn_sub_agent(invocation, definition, options)

        invocation.set_spawn_handler(spawn_handler)
        self._runtimes[invocation] = runtime
        self.register_invocation(invocation, runtime)

    def register_invocation(
        self,
        invocation: AgentInvocation,
        runtime: AgentRuntimeOptions,
    ) -> AgentRuntimeDescriptor:
        """Resolve the runtime descriptor for ``invocation`` from the catalog."""
        descriptor = runtime.catalog.get_agent(invocation.definition.id)
        if descriptor is None:
            message = f"No runtime descriptor registered for agent {invocation.definition.id}"
            raise LookupError(message)
        self._descriptors[invocation] = descriptor
        invocation.set_runtime(
            descriptor.provider.name,
            descriptor.model,
            descriptor.metadata.model_dump(exclude_none=True) if descriptor.metadata is not None else None,
        )
        return descriptor

    def _require_runtime(self, invocation: AgentInvocation) -> AgentRuntimeOptions:
        runtime = self._runtimes.get(invocation)
        if runtime is None:
            message = f"No runtime bound to agent {invocation.id}"
            raise LookupError(message)
        return runtime

    def create_metadata(self, invocation: AgentInvocation) -> AgentMetadata:
        metadata: AgentMetadata = {
            "id": invocation.id,
            "parent_id": invocation.parent_id,
            "depth": invocation.depth,
            "is_root": invocation.is_root,
            "system_prompt": invocation.definition.system_prompt,
            "tools": [tool.name for tool in invocation.definition.tools],
        }
        descriptor = self._descriptors.get(invocation)
        if descriptor is not None:
            metadata["model"] = descriptor.model
            metadata["provider"] = descriptor.provider.name
        return metadata

    def create_lifecycle_payload(self, invocation: AgentInvocation) -> AgentLifecyclePayload:
        """Snapshot the invocation's metadata; rebuilt for every dispatch and trace."""
        return {
            "metadata": self.create_metadata(invocation),
            "prompt": invocation.prompt,
            "context": invocation.context.summary(),
            "history_length": len(invocation.history),
        }

    async def write_trace(
        self,
        runtime: AgentRuntimeOptions,
        invocation: AgentInvocation,
        phase: str,
        data: dict[str, Any] | None = None,
        *,
        append: bool = True,
    ) -> None:
        """Write one trace record; a no-op when the run has no trace path."""
        if not runtime.trace_path:
            return
        lifecycle = self.create_lifecycle_payload(invocation)
        metadata = lifecycle["metadata"]
        agent: dict[str, Any] = {
            "id": metadata["id"],
            "parentId": metadata["parent_id"],
            "depth": metadata["depth"],
            "isRoot": metadata["is_root"],
            "systemPrompt": metadata["system_prompt"],
            "tools": metadata["tools"],
        }
        if "model" in metadata:
            agent["model"] = metadata["model"]
        if "provider" in metadata:
            agent["provider"] = metadata["provider"]

        record: dict[str, Any] = {
            "phase": phase,
            "agent": agent,
            "prompt": lifecycle["prompt"],
            "context": {
                "totalBytes": lifecycle["context"]["total_bytes"],
                "fileCount": lifecycle["context"]["file_count"],
            },
            "historyLength": lifecycle["history_length"],
        }
        if data is not None:
            record["data"] = data
        if runtime.session_id:
            record["sessionId"] = runtime.session_id
        record["timestamp"] = utc_timestamp()
        await maybe_await(self._trace_writer.write(runtime.trace_path, record, append))

    async def dispatch_hook_or_throw(
        self,
        runtime: AgentRuntimeOptions,
        invocation: AgentInvocation,
        event: HookEvent,
        payload: Any,
    ) -> HookDispatchResult:
        """Dispatch ``event``; raise ``HookDispatchError`` if any listener failed."""
        dispatch = await runtime.hooks.emit_async(event, payload)
        if dispatch.error is not None:
            runtime.logger.error(
                "Hook dispatch failed",
                extra={"agent": invocation.id, "hook": event.value, "error": str(dispatch.error)},
            )
            raise HookDispatchError(event.value, dispatch.error) from dispatch.error
        return dispatch

    def compose_tool_schemas(
        self,
        invocation: AgentInvocation,
        runtime: AgentRuntimeOptions,
    ) -> list[dict[str, Any]] | None:
        """Registry schemas plus the spawn tool; None when there are no tools at all."""
        schemas = invocation.tool_registry.schemas()
        spawn_schema = build_spawn_tool_schema(runtime.catalog)
        if spawn_schema is not None:
            schemas.append(spawn_schema)
        return schemas or None

    def _resolve_subagent(self, runtime: AgentRuntimeOptions, arguments: SpawnToolArguments) -> AgentRuntimeDescriptor:
        descriptor = runtime.catalog.get_subagent(arguments.agent)
        if descriptor is not None:
            return descriptor
        available = ", ".join(agent.id for agent in runtime.catalog.list_subagents())
        message = f'Unknown subagent "{arguments.agent}".'
        if available:
            message = f'Unknown subagent "{arguments.agent}". Available agents: {available}.'
        raise UnknownSubagentError(message)

    async def _execute_spawn_tool(
        self,
        invocation: AgentInvocation,
        runtime: AgentRuntimeOptions,
        event: ToolCallEvent,
        parent_descriptor: AgentRuntimeDescriptor,
    ) -> ToolResult:
        if not runtime.catalog.enable_subagents:
            message = "Subagent delegation is disabled for this run."
            raise SpawnUnavailableError(message)

        arguments = parse_spawn_arguments(event.arguments)
        descriptor = self._resolve_subagent(runtime, arguments)
        runtime.logger.debug(
            "Spawning configured subagent",
            extra={"agent": invocation.id, "delegated_to": descriptor.id, "tool_call_id": event.id},
        )

        async def spawn_for_hook(options: dict[str, Any]) -> dict[str, Any]:
            agent_id = options.get("agent_id")
            target = runtime.catalog.get_agent(agent_id) if agent_id else None
            if target is None:
                message = f'Hook attempted to spawn unknown agent "{agent_id}".'
                raise UnknownSubagentError(message)
            runtime.logger.debug(
                "Hook spawning intermediary subagent",
                extra={"agent": invocation.id, "delegated_to": target.id, "tool_call_id": event.id},
            )
            spawned = await invocation.spawn(
                target.definition,
                AgentInvocationOptions(
                    prompt=options.get("prompt", ""),
                    variables=dict(options.get("variables") or {}),
                    context=options.get("context"),
                ),
            )
            return {"prompt": spawned.prompt, "messages": spawned.messages, "target": _target_summary(target)}

        dispatch = await self.dispatch_hook_or_throw(
            runtime,
            invocation,
            HookEvent.BEFORE_SPAWN_SUBAGENT,
            {
                **self.create_lifecycle_payload(invocation),
                "event": event,
                "request": {
                    "agent_id": arguments.agent,
                    "prompt": arguments.prompt,
                    "variables": arguments.variables,
                    "metadata": arguments.metadata,
                },
                "target": _target_summary(descriptor),
                "spawn": spawn_for_hook,
            },
        )

        if dispatch.blocked is not None:
            reason = dispatch.blocked.reason or DEFAULT_SPAWN_BLOCK_REASON
            runtime.logger.warning(
                "Subagent spawn vetoed by hook",
                extra={"agent": invocation.id, "delegated_to": descriptor.id, "reason": reason},
            )
            return blocked_spawn_result(descriptor, parent_descriptor, arguments.prompt, reason)

        overrides = apply_spawn_overrides(dispatch.results, arguments.prompt, arguments.variables)
        child = await invocation.spawn(
            descriptor.definition,
            AgentInvocationOptions(
                prompt=overrides.prompt,
                variables=dict(overrides.variables or {}),
                context=overrides.context if overrides.context_provided else None,
            ),
        )
        return build_spawn_result(child, descriptor, parent_descriptor, arguments, overrides)
