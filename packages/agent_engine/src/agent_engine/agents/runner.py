"""The per-invocation execution loop."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from agent_engine.agents.invocation import InvocationState
from agent_engine.agents.spawn import SPAWN_TOOL_NAME
from agent_engine.errors import serialize_error
from agent_engine.hooks.events import HookEvent
from agent_engine.models.messages import ChatMessage
from agent_engine.streaming import (
    EndEvent,
    ErrorEvent,
    NotificationEvent,
    StreamEvent,
    StreamOptions,
    ToolCallEvent,
    ToolResultEvent,
    coerce_stream_event,
)
from agent_engine.tools.registry import ToolExecutionContext, ToolResult, coerce_tool_arguments
from agent_engine.utils import to_json

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.agents.runtime import AgentRuntimeOptions
    from agent_engine.compaction.service import TranscriptCompactionService
    from agent_engine.hooks.bus import HookDispatchResult
    from agent_engine.hooks.events import AgentIterationPayload, AgentLifecyclePayload
    from agent_engine.io.renderer import StreamRenderer
    from agent_engine.models.agents import AgentRuntimeDescriptor

DEFAULT_BLOCK_REASON = "Tool execution blocked by hook."

TraceWriter = Callable[[str, "dict[str, Any] | None", bool], Awaitable[None]]
HookDispatcher = Callable[[HookEvent, Any], Awaitable["HookDispatchResult"]]


@dataclass(frozen=True)
class AgentRunnerOptions:
    """Everything one run of the loop needs, injected by the orchestrator."""

    invocation: AgentInvocation
    descriptor: AgentRuntimeDescriptor
    runtime: AgentRuntimeOptions
    stream_renderer: StreamRenderer
    lifecycle: Callable[[], AgentLifecyclePayload]
    write_trace: TraceWriter
    dispatch_hook_or_throw: HookDispatcher
    compose_tool_schemas: Callable[[], list[dict[str, Any]] | None]
    execute_spawn_tool: Callable[[ToolCallEvent], Awaitable[ToolResult]]
    compaction_service: TranscriptCompactionService | None = None


def tool_result_message(event: ToolCallEvent, result: ToolResult) -> ChatMessage:
    """Tool-role transcript entry serializing the result envelope."""
    return ChatMessage(
        role="tool",
        content=to_json(result.to_dict()),
        name=event.name,
        tool_call_id=event.id,
    )


class AgentRunner:
    """Drive one invocation from ``created`` to ``completed`` or ``failed``.

    Each pass of the outer loop is one model call. Stream events are consumed
    one at a time in emission order; a tool call that runs or is vetoed
    schedules another pass so the model can see the outcome.
    """

    def __init__(self, options: AgentRunnerOptions) -> None:
        self._options = options
        self._subagent_stop_emitted = False
        self._previous_response_id: str | None = None
        self._iteration = 0

    @property
    def invocation(self) -> AgentInvocation:
        return self._options.invocation

    async def run(self) -> AgentInvocation:
        options = self._options
        invocation = options.invocation
        descriptor = options.descriptor
        hooks = options.runtime.hooks

        if not invocation.is_root:
            options.stream_renderer.flush()

        invocation.transition(InvocationState.RUNNING)
        await hooks.emit_async(HookEvent.BEFORE_AGENT_START, options.lifecycle())
        await options.write_trace(
            "agent_start",
            {
                "prompt": invocation.prompt,
                "systemPrompt": invocation.definition.system_prompt,
                "model": descriptor.model,
                "provider": descriptor.provider.name,
            },
            options.runtime.trace_append if invocation.is_root else True,
        )

        try:
            continue_conversation = True
            while continue_conversation:
                self._iteration += 1
                continue_conversation = await self._run_iteration(self._iteration)
                if invocation.failed:
                    break
        except Exception as exc:
            await self._handle_unexpected_error(exc)
            raise

        if invocation.failed:
            await self._emit_subagent_stop()
            return invocation

        invocation.transition(InvocationState.COMPLETED)
        final_message = invocation.messages[-1].content if invocation.messages else None
        await hooks.emit_async(
            HookEvent.AFTER_AGENT_COMPLETE,
            {**options.lifecycle(), "iterations": self._iteration, "messages": invocation.messages},
        )
        await self._emit_subagent_stop()
        await options.write_trace(
            "agent_complete",
            {
                "iterations": self._iteration,
                "messageCount": len(invocation.messages),
                "finalMessage": final_message,
            },
            True,
        )
        return invocation

    def _iteration_payload(self, iteration: int) -> AgentIterationPayload:
        return {
            **self._options.lifecycle(),
            "iteration": iteration,
            "messages": self.invocation.messages,
        }

    async def _run_iteration(self, iteration: int) -> bool:
        """Run one model call; return True when another pass is needed."""
        options = self._options
        invocation = options.invocation
        descriptor = options.descriptor
        runtime = options.runtime

        if options.compaction_service is not None:
            await options.compaction_service.plan_and_apply(
                invocation=invocation,
                descriptor=descriptor,
                iteration=iteration,
                lifecycle=options.lifecycle(),
                hooks=runtime.hooks,
                selector=runtime.transcript_compactor,
                run_logger=runtime.logger,
            )

        await runtime.hooks.emit_async(HookEvent.BEFORE_MODEL_CALL, self._iteration_payload(iteration))
        await options.write_trace(
            "model_call",
            {
                "iteration": iteration,
                "messageCount": len(invocation.messages),
                "model": descriptor.model,
                "provider": descriptor.provider.name,
            },
            True,
        )

        stream = descriptor.provider.stream(
            StreamOptions(
                model=descriptor.model,
                messages=[message.copy() for message in invocation.messages],
                tools=options.compose_tool_schemas(),
                previous_response_id=self._previous_response_id,
                metadata={"agent_id": invocation.id},
            )
        )

        continue_conversation = False
        buffer: list[str] = []
        try:
            async for raw_event in stream:
                event = coerce_stream_event(raw_event)
                if event.type == "delta":
                    buffer.append(event.text)
                    self._render(event)
                elif event.type == "tool_call":
                    if await self._handle_tool_call(event, iteration):
                        continue_conversation = True
                    if invocation.failed:
                        break
                elif event.type == "error":
                    await self._handle_stream_error(event, iteration)
                    break
                elif event.type == "notification":
                    self._render(event)
                    await runtime.hooks.emit_async(
                        HookEvent.NOTIFICATION,
                        {**self._iteration_payload(iteration), "event": event},
                    )
                elif event.type == "end":
                    self._handle_end(event, buffer)
                    buffer.clear()
                    await runtime.hooks.emit_async(HookEvent.STOP, self._iteration_payload(iteration))
                    await options.write_trace(
                        "iteration_complete",
                        {
                            "iteration": iteration,
                            "messageCount": len(invocation.messages),
                            "finalMessage": invocation.messages[-1].content if invocation.messages else None,
                        },
                        True,
                    )
                else:
                    self._render(event)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        return continue_conversation

    def _render(self, event: StreamEvent) -> None:
        self._options.stream_renderer.render(replace(event, agent_id=self.invocation.id))

    def _handle_end(self, event: EndEvent, buffer: list[str]) -> None:
        self._render(event)
        if event.response_id:
            self._previous_response_id = event.response_id
        text = "".join(buffer)
        if text.strip():
            self.invocation.messages.append(ChatMessage(role="assistant", content=text))

    async def _handle_tool_call(self, event: ToolCallEvent, iteration: int) -> bool:
        """Run or veto one tool call; return True when the model should be called again."""
        options = self._options
        invocation = options.invocation
        runtime = options.runtime

        options.stream_renderer.flush()
        self._render(event)
        arguments = coerce_tool_arguments(event.arguments)
        invocation.messages.append(
            ChatMessage(
                role="assistant",
                content="",
                name=event.name,
                tool_call_id=event.id,
                tool_arguments=arguments if isinstance(arguments, dict) else None,
            )
        )

        pre_dispatch = await options.dispatch_hook_or_throw(
            HookEvent.PRE_TOOL_USE,
            {**self._iteration_payload(iteration), "event": event},
        )
        await options.write_trace(
            "tool_call",
            {"iteration": iteration, "id": event.id, "name": event.name, "arguments": event.arguments},
            True,
        )

        if pre_dispatch.blocked is not None:
            reason = pre_dispatch.blocked.reason or DEFAULT_BLOCK_REASON
            invocation.messages.append(
                ChatMessage(role="tool", content=reason, name=event.name, tool_call_id=event.id)
            )
            runtime.logger.warning(
                "Tool execution vetoed by hook",
                extra={"tool": event.name, "agent": invocation.id, "reason": reason},
            )
            return True

        try:
            if event.name == SPAWN_TOOL_NAME:
                result = await options.execute_spawn_tool(event)
            else:
                result = await invocation.tool_registry.execute(
                    event,
                    ToolExecutionContext(cwd=runtime.cwd, confirm=runtime.confirm, env=dict(os.environ)),
                )
        except Exception as exc:
            await self._handle_tool_failure(event, iteration, exc)
            return False

        self._render(ToolResultEvent(name=event.name, result=result, id=event.id))
        invocation.messages.append(tool_result_message(event, result))
        await options.dispatch_hook_or_throw(
            HookEvent.POST_TOOL_USE,
            {**self._iteration_payload(iteration), "event": event, "result": result},
        )
        await options.write_trace(
            "tool_result",
            {"iteration": iteration, "id": event.id, "name": event.name, "result": result.to_dict()},
            True,
        )
        return True

    async def _handle_tool_failure(self, event: ToolCallEvent, iteration: int, exc: Exception) -> None:
        options = self._options
        invocation = options.invocation
        serialized = serialize_error(exc)
        message = f"Tool execution failed: {serialized['message']}"

        options.runtime.logger.warning(
            "Tool execution failed",
            extra={"tool": event.name, "agent": invocation.id, "error": serialized["message"]},
        )
        self._render(
            NotificationEvent(
                payload=message,
                metadata={"tool": event.name, "tool_call_id": event.id, "severity": "error"},
            )
        )
        invocation.messages.append(
            ChatMessage(role="tool", content=message, name=event.name, tool_call_id=event.id)
        )
        invocation.mark_failed(serialized)
        await options.dispatch_hook_or_throw(
            HookEvent.ON_AGENT_ERROR,
            {**options.lifecycle(), "error": serialized},
        )
        await options.write_trace(
            "agent_error",
            {"iteration": iteration, "id": event.id, "name": event.name, "error": serialized},
            True,
        )

    async def _handle_stream_error(self, event: ErrorEvent, iteration: int) -> None:
        options = self._options
        self._render(event)
        error = {"message": event.message, "cause": event.cause}
        options.invocation.mark_failed(error)
        await options.dispatch_hook_or_throw(
            HookEvent.ON_ERROR,
            {**options.lifecycle(), "iteration": iteration, "error": event},
        )
        await options.dispatch_hook_or_throw(
            HookEvent.ON_AGENT_ERROR,
            {**options.lifecycle(), "error": error},
        )
        await options.write_trace(
            "agent_error",
            {"iteration": iteration, "message": event.message, "cause": event.cause},
            True,
        )

    async def _handle_unexpected_error(self, exc: Exception) -> None:
        """Record an escaping error, then emit ``subagentStop`` before it propagates."""
        options = self._options
        invocation = options.invocation
        serialized = serialize_error(exc)
        invocation.mark_failed(serialized)
        try:
            await options.dispatch_hook_or_throw(
                HookEvent.ON_AGENT_ERROR,
                {**options.lifecycle(), "error": serialized},
            )
            await options.write_trace("agent_error", serialized, True)
        finally:
            await self._emit_subagent_stop()

    async def _emit_subagent_stop(self) -> None:
        if self._subagent_stop_emitted or self.invocation.is_root:
            return
        self._subagent_stop_emitted = True
        await self._options.runtime.hooks.emit_async(HookEvent.SUBAGENT_STOP, self._options.lifecycle())
