import json
from pathlib import Path
from typing import Any

import pytest
from conftest import delta, end, tool_call

from agent_engine.agents import (
    SPAWN_TOOL_RESULT_SCHEMA,
    AgentInvocationFactory,
    AgentOrchestrator,
    AgentRunRequest,
    InvocationState,
)
from agent_engine.compaction import (
    TranscriptCompactionPlan,
    TranscriptCompactionResult,
    TranscriptCompactionService,
)
from agent_engine.errors import HookDispatchError
from agent_engine.hooks import HookBus, HookEvent, block_hook
from agent_engine.io import read_trace
from agent_engine.models import AgentCatalog, ChatMessage
from agent_engine.tools import ToolDefinition, ToolExecutionContext, ToolResult


def _echo_tool(calls: list[dict[str, Any]], *, fail: bool = False) -> ToolDefinition:
    def handler(args: dict[str, Any], ctx: ToolExecutionContext) -> ToolResult:
        calls.append(args)
        if fail:
            raise RuntimeError("boom")
        return ToolResult(schema="echo.v1", content=args["text"])

    return ToolDefinition(
        name="echo",
        description="Echo text back",
        json_schema={"type": "object", "required": ["text"], "properties": {"text": {"type": "string"}}},
        handler=handler,
    )


def _request(descriptor, prompt: str = "hi") -> AgentRunRequest:
    return AgentRunRequest(definition=descriptor.definition, prompt=prompt)


def _record(bus: HookBus, event: HookEvent, sink: list[Any]) -> None:
    bus.on(event, lambda payload: sink.append(payload))


@pytest.mark.asyncio
async def test_deltas_merge_into_one_assistant_message(make_descriptor, make_runtime, orchestrator) -> None:
    manager = make_descriptor("manager", [[delta("a"), delta("b"), end()]])

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager)))

    assert invocation.state is InvocationState.COMPLETED
    assert [message.role for message in invocation.messages] == ["system", "user", "assistant"]
    assert invocation.messages[-1] == ChatMessage(role="assistant", content="ab")
    call = manager.provider.calls[0]
    assert call.tools is None
    assert call.metadata == {"agent_id": "manager"}
    assert call.messages[0] is not invocation.messages[0]


@pytest.mark.asyncio
async def test_whitespace_only_turn_adds_no_message(make_descriptor, make_runtime, orchestrator) -> None:
    manager = make_descriptor("manager", [[delta("  "), end()]])

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager)))

    assert [message.role for message in invocation.messages] == ["system", "user"]
    assert invocation.state is InvocationState.COMPLETED


@pytest.mark.asyncio
async def test_notification_is_dispatched_without_touching_transcript(
    make_descriptor, make_runtime, orchestrator
) -> None:
    manager = make_descriptor(
        "manager",
        [[{"type": "notification", "payload": {"status": "warming up"}}, delta("x"), end()]],
    )
    bus = HookBus()
    seen: list[tuple[int, Any, int]] = []
    bus.on(
        HookEvent.NOTIFICATION,
        lambda payload: seen.append((payload["iteration"], payload["event"], len(payload["messages"]))),
    )

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), hooks=bus))

    assert len(seen) == 1
    iteration, event, message_count = seen[0]
    assert iteration == 1
    assert event.type == "notification"
    assert event.payload == {"status": "warming up"}
    assert message_count == 2
    assert [message.role for message in invocation.messages] == ["system", "user", "assistant"]
    assert invocation.messages[-1] == ChatMessage(role="assistant", content="x")
    assert invocation.state is InvocationState.COMPLETED


@pytest.mark.asyncio
async def test_tool_call_runs_and_loops(make_descriptor, make_runtime, orchestrator) -> None:
    calls: list[dict[str, Any]] = []
    manager = make_descriptor(
        "manager",
        [
            [tool_call("echo", {"text": "ping"}, "call-1"), end(response_id="resp-1")],
            [delta("done"), end()],
        ],
        tools=[_echo_tool(calls)],
    )
    bus = HookBus()
    post: list[Any] = []
    _record(bus, HookEvent.POST_TOOL_USE, post)

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert calls == [{"text": "ping"}]
    placeholder, tool_entry = invocation.messages[2:4]
    assert placeholder == ChatMessage(
        role="assistant", content="", name="echo", tool_call_id="call-1", tool_arguments={"text": "ping"}
    )
    assert tool_entry.role == "tool"
    assert tool_entry.tool_call_id == "call-1"
    assert json.loads(tool_entry.content) == {"schema": "echo.v1", "content": "ping"}
    assert invocation.messages[-1].content == "done"
    assert [payload["result"].content for payload in post] == ["ping"]
    assert manager.provider.calls[1].previous_response_id == "resp-1"
    assert manager.provider.calls[0].tools[0]["name"] == "echo"


@pytest.mark.asyncio
async def test_pre_tool_use_veto_skips_handler(make_descriptor, make_runtime, orchestrator) -> None:
    calls: list[dict[str, Any]] = []
    manager = make_descriptor(
        "manager",
        [
            [tool_call("echo", {"text": "hi"}, "call-1"), end()],
            [delta("fine"), end()],
        ],
        tools=[_echo_tool(calls)],
    )
    bus = HookBus()
    post: list[Any] = []
    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: block_hook("policy veto"))
    _record(bus, HookEvent.POST_TOOL_USE, post)

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert calls == []
    assert post == []
    tool_entries = [message for message in invocation.messages if message.role == "tool"]
    assert tool_entries == [ChatMessage(role="tool", content="policy veto", name="echo", tool_call_id="call-1")]
    assert invocation.messages[-1].content == "fine"
    assert invocation.state is InvocationState.COMPLETED


@pytest.mark.asyncio
async def test_veto_without_reason_uses_default(make_descriptor, make_runtime, orchestrator) -> None:
    manager = make_descriptor(
        "manager",
        [[tool_call("echo", {"text": "hi"}, "call-1"), end()], [end()]],
        tools=[_echo_tool([])],
    )
    bus = HookBus()
    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: block_hook())

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert invocation.messages[-1].content == "Tool execution blocked by hook."


@pytest.mark.asyncio
async def test_tool_failure_marks_invocation_failed(make_descriptor, make_runtime, orchestrator) -> None:
    manager = make_descriptor(
        "manager",
        [[tool_call("echo", {"text": "hi"}, "call-1"), end()], [delta("unreached"), end()]],
        tools=[_echo_tool([], fail=True)],
    )
    bus = HookBus()
    agent_errors: list[Any] = []
    _record(bus, HookEvent.ON_AGENT_ERROR, agent_errors)

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert invocation.state is InvocationState.FAILED
    assert invocation.messages[-1] == ChatMessage(
        role="tool",
        content='Tool execution failed: Tool "echo" failed: boom',
        name="echo",
        tool_call_id="call-1",
    )
    assert invocation.error is not None
    assert invocation.error["message"] == 'Tool "echo" failed: boom'
    assert [payload["error"]["message"] for payload in agent_errors] == ['Tool "echo" failed: boom']
    assert manager.provider.remaining == 1


@pytest.mark.asyncio
async def test_invalid_tool_arguments_fail_without_running_handler(
    make_descriptor, make_runtime, orchestrator
) -> None:
    calls: list[dict[str, Any]] = []
    manager = make_descriptor(
        "manager",
        [[tool_call("echo", {}, "call-1"), end()]],
        tools=[_echo_tool(calls)],
    )

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager)))

    assert calls == []
    assert invocation.failed
    assert "'text' is a required property" in invocation.messages[-1].content


@pytest.mark.asyncio
async def test_stream_error_fails_invocation(make_descriptor, make_runtime, orchestrator) -> None:
    manager = make_descriptor("manager", [[delta("partial"), {"type": "error", "message": "rate limited"}]])
    bus = HookBus()
    order: list[str] = []
    bus.on(HookEvent.ON_ERROR, lambda payload: order.append(f"onError:{payload['error'].message}"))
    bus.on(HookEvent.ON_AGENT_ERROR, lambda payload: order.append(f"onAgentError:{payload['error']['message']}"))

    invocation = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert invocation.failed
    assert invocation.error == {"message": "rate limited", "cause": None}
    assert order == ["onError:rate limited", "onAgentError:rate limited"]
    assert [message.role for message in invocation.messages] == ["system", "user"]


@pytest.mark.asyncio
async def test_failing_pre_tool_use_listener_propagates(make_descriptor, make_runtime, orchestrator) -> None:
    calls: list[dict[str, Any]] = []
    manager = make_descriptor(
        "manager",
        [[tool_call("echo", {"text": "hi"}, "call-1"), end()]],
        tools=[_echo_tool(calls)],
    )
    bus = HookBus()
    agent_errors: list[Any] = []

    def broken(payload: Any) -> None:
        raise ValueError("listener broke")

    bus.on(HookEvent.PRE_TOOL_USE, broken)
    _record(bus, HookEvent.ON_AGENT_ERROR, agent_errors)

    with pytest.raises(HookDispatchError) as exc_info:
        await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager), bus))

    assert exc_info.value.event == "preToolUse"
    assert isinstance(exc_info.value.cause, ValueError)
    assert calls == []
    assert len(agent_errors) == 1


@pytest.mark.asyncio
async def test_manager_delegates_to_worker(make_descriptor, make_runtime, orchestrator) -> None:
    worker = make_descriptor("worker", [[delta("sub"), end()]])
    manager = make_descriptor(
        "manager",
        [
            [tool_call("spawn_subagent", {"agent": "worker", "prompt": "do it"}, "spawn-1"), end()],
            [delta("manager"), end()],
        ],
    )
    bus = HookBus()
    stops: list[Any] = []
    _record(bus, HookEvent.SUBAGENT_STOP, stops)

    root = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager, [worker]), bus))

    assert [agent.id for agent in orchestrator.collect_invocations(root)] == ["manager", "worker"]
    child = root.children[0]
    assert child.parent is root
    assert child.depth == 1
    assert child.prompt == "do it"
    assert child.messages[-1].content == "sub"
    assert root.messages[-1].content == "manager"
    result = json.loads(root.messages[3].content)
    assert result["schema"] == SPAWN_TOOL_RESULT_SCHEMA
    assert result["content"] == "sub"
    assert result["data"]["state"] == "completed"
    assert result["metadata"]["parentAgentId"] == "manager"
    assert [payload["metadata"]["id"] for payload in stops] == ["worker"]
    spawn_schema = manager.provider.calls[0].tools[-1]
    assert spawn_schema["name"] == "spawn_subagent"
    assert "- worker" in spawn_schema["description"]


@pytest.mark.asyncio
async def test_children_keep_spawn_order(make_descriptor, make_runtime, orchestrator) -> None:
    alpha = make_descriptor(
        "alpha",
        [[tool_call("spawn_subagent", {"agent": "gamma", "prompt": "deeper"}, "spawn-3"), end()], [end()]],
    )
    beta = make_descriptor("beta", [[delta("beta done"), end()]])
    gamma = make_descriptor("gamma", [[delta("gamma done"), end()]])
    manager = make_descriptor(
        "manager",
        [
            [
                tool_call("spawn_subagent", {"agent": "alpha", "prompt": "first"}, "spawn-1"),
                tool_call("spawn_subagent", {"agent": "beta", "prompt": "second"}, "spawn-2"),
                end(),
            ],
            [delta("all done"), end()],
        ],
    )
    catalog = AgentCatalog(manager, [alpha, beta, gamma])

    root = await orchestrator.run_agent(_request(manager), make_runtime(catalog))

    tree = orchestrator.collect_invocations(root)
    assert [agent.id for agent in tree] == ["manager", "alpha", "beta", "gamma"]
    assert [agent.depth for agent in tree] == [0, 1, 1, 2]
    assert tree[3].parent_id == "alpha"
    assert all(agent.state is InvocationState.COMPLETED for agent in tree)


@pytest.mark.asyncio
async def test_subagent_stop_fires_once_for_failing_child(make_descriptor, make_runtime, orchestrator) -> None:
    worker = make_descriptor("worker", [[{"type": "error", "message": "worker down"}]])
    manager = make_descriptor(
        "manager",
        [[tool_call("spawn_subagent", {"agent": "worker", "prompt": "do it"}, "spawn-1"), end()]],
    )
    bus = HookBus()
    stops: list[str] = []
    bus.on(HookEvent.SUBAGENT_STOP, lambda payload: stops.append(payload["metadata"]["id"]))

    def worker_error(payload: Any) -> None:
        if payload["metadata"]["id"] == "worker":
            raise RuntimeError("error hook broke")

    bus.on(HookEvent.ON_AGENT_ERROR, worker_error)

    root = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager, [worker]), bus))

    assert stops == ["worker"]
    assert root.children[0].failed
    assert root.failed
    assert root.messages[-1].content.startswith('Tool execution failed: Hook "onAgentError" failed')


@pytest.mark.asyncio
async def test_spawn_veto_returns_blocked_result(make_descriptor, make_runtime, orchestrator) -> None:
    worker = make_descriptor("worker", [[delta("sub"), end()]])
    manager = make_descriptor(
        "manager",
        [
            [tool_call("spawn_subagent", {"agent": "worker", "prompt": "do it"}, "spawn-1"), end()],
            [delta("ok"), end()],
        ],
    )
    bus = HookBus()
    bus.on(HookEvent.BEFORE_SPAWN_SUBAGENT, lambda payload: block_hook())

    root = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager, [worker]), bus))

    assert root.children == []
    assert worker.provider.calls == []
    result = json.loads(root.messages[3].content)
    assert result["content"] == "Subagent delegation blocked by hook."
    assert result["data"]["blocked"] is True
    assert result["metadata"]["blocked"] is True
    assert root.state is InvocationState.COMPLETED


@pytest.mark.asyncio
async def test_spawn_listener_overrides_prompt(make_descriptor, make_runtime, orchestrator) -> None:
    worker = make_descriptor("worker", [[delta("sub"), end()]])
    manager = make_descriptor(
        "manager",
        [
            [tool_call("spawn_subagent", {"agent": "worker", "prompt": "do it"}, "spawn-1"), end()],
            [end()],
        ],
    )
    bus = HookBus()
    requests: list[Any] = []

    def rewrite(payload: Any) -> dict[str, Any]:
        requests.append(payload["request"])
        return {"prompt": "do it carefully"}

    bus.on(HookEvent.BEFORE_SPAWN_SUBAGENT, rewrite)

    root = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager, [worker]), bus))

    assert requests[0]["agent_id"] == "worker"
    assert root.children[0].prompt == "do it carefully"
    assert json.loads(root.messages[3].content)["data"]["prompt"] == "do it carefully"


@pytest.mark.asyncio
async def test_unknown_subagent_fails_parent(make_descriptor, make_runtime, orchestrator) -> None:
    worker = make_descriptor("worker")
    manager = make_descriptor(
        "manager",
        [[tool_call("spawn_subagent", {"agent": "ghost", "prompt": "boo"}, "spawn-1"), end()]],
    )

    root = await orchestrator.run_agent(_request(manager), make_runtime(AgentCatalog(manager, [worker])))

    assert root.failed
    assert root.messages[-1].content == (
        'Tool execution failed: Unknown subagent "ghost". Available agents: worker.'
    )


@pytest.mark.asyncio
async def test_trace_records_each_phase(make_descriptor, make_runtime, orchestrator, tmp_path: Path) -> None:
    trace = tmp_path / "runs" / "trace.jsonl"
    trace.parent.mkdir()
    trace.write_text('{"phase": "stale"}\n', encoding="utf-8")
    worker = make_descriptor("worker", [[delta("sub"), end()]])
    manager = make_descriptor(
        "manager",
        [
            [tool_call("spawn_subagent", {"agent": "worker", "prompt": "do it"}, "spawn-1"), end()],
            [delta("done"), end()],
        ],
    )
    runtime = make_runtime(
        AgentCatalog(manager, [worker]),
        trace_path=str(trace),
        trace_append=False,
        session_id="session-1",
    )

    await orchestrator.run_agent(_request(manager), runtime)

    records = read_trace(trace)
    assert [(record["agent"]["id"], record["phase"]) for record in records] == [
        ("manager", "agent_start"),
        ("manager", "model_call"),
        ("manager", "tool_call"),
        ("worker", "agent_start"),
        ("worker", "model_call"),
        ("worker", "iteration_complete"),
        ("worker", "agent_complete"),
        ("manager", "tool_result"),
        ("manager", "iteration_complete"),
        ("manager", "model_call"),
        ("manager", "iteration_complete"),
        ("manager", "agent_complete"),
    ]
    first = records[0]
    assert first["agent"]["isRoot"] is True
    assert first["agent"]["parentId"] is None
    assert first["context"] == {"totalBytes": 0, "fileCount": 0}
    assert first["historyLength"] == 0
    assert first["sessionId"] == "session-1"
    assert first["data"]["model"] == "test-model"
    assert records[3]["agent"]["parentId"] == "manager"
    assert records[-1]["data"]["finalMessage"] == "done"


@pytest.mark.asyncio
async def test_compaction_runs_before_model_call(make_descriptor, make_runtime) -> None:
    class DropHistory:
        def __init__(self) -> None:
            self.applied: list[int] = []

        def plan(self, invocation: Any, iteration: int) -> TranscriptCompactionPlan | None:
            if len(invocation.messages) <= 3:
                return None

            def apply() -> TranscriptCompactionResult:
                self.applied.append(iteration)
                del invocation.messages[1:3]
                return TranscriptCompactionResult(removed_messages=2)

            return TranscriptCompactionPlan(apply=apply, reason="too long")

    compactor = DropHistory()
    history = [ChatMessage(role="user", content="old question"), ChatMessage(role="assistant", content="old")]
    manager = make_descriptor("manager", [[delta("hello"), end()]])
    bus = HookBus()
    order: list[str] = []
    bus.on(HookEvent.PRE_COMPACT, lambda payload: order.append(f"preCompact:{payload['reason']}"))
    bus.on(HookEvent.BEFORE_MODEL_CALL, lambda payload: order.append("beforeModelCall"))
    orchestrator = AgentOrchestrator(AgentInvocationFactory(), compaction_service=TranscriptCompactionService())

    invocation = await orchestrator.run_agent(
        AgentRunRequest(definition=manager.definition, prompt="hi", history=history),
        make_runtime(AgentCatalog(manager), bus, transcript_compactor=compactor),
    )

    assert order == ["preCompact:too long", "beforeModelCall"]
    assert compactor.applied == [1]
    assert [message.content for message in manager.provider.calls[0].messages] == ["You are manager.", "hi"]
    assert invocation.messages[-1].content == "hello"
