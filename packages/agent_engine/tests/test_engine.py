from pathlib import Path
from typing import Any

import pytest
from conftest import delta, end, tool_call

from agent_engine.context import ContextConfig
from agent_engine.engine import AgentEngine
from agent_engine.errors import HookBlockedError, HookDispatchError
from agent_engine.hooks import HookBus, HookEvent, block_hook
from agent_engine.io import get_session_id, read_trace
from agent_engine.models import AgentCatalog, ChatMessage, Settings

SESSION_EVENTS = (
    HookEvent.SESSION_START,
    HookEvent.BEFORE_CONTEXT_PACK,
    HookEvent.AFTER_CONTEXT_PACK,
    HookEvent.USER_PROMPT_SUBMIT,
    HookEvent.BEFORE_AGENT_START,
    HookEvent.AFTER_AGENT_COMPLETE,
    HookEvent.SESSION_END,
)


def _recording_bus(events: list[str], payloads: dict[str, Any]) -> HookBus:
    bus = HookBus()
    for event in SESSION_EVENTS:

        def listener(payload: Any, name: str = event.value) -> None:
            events.append(name)
            payloads[name] = payload

        bus.on(event, listener)
    return bus


@pytest.mark.asyncio
async def test_run_emits_session_hooks_in_order(make_descriptor, tmp_path: Path) -> None:
    (tmp_path / "notes.md").write_text("remember the milk", encoding="utf-8")
    manager = make_descriptor("manager", [[delta("answer"), end()]])
    events: list[str] = []
    payloads: dict[str, Any] = {}
    trace = tmp_path / "trace.jsonl"

    result = await AgentEngine(settings=Settings()).run(
        "What should I remember?",
        AgentCatalog(manager),
        hooks=_recording_bus(events, payloads),
        context_config=ContextConfig(base_dir=str(tmp_path), include=["*.md"]),
        trace_path=trace,
    )

    assert events == [event.value for event in SESSION_EVENTS]
    assert result.messages[-1] == ChatMessage(role="assistant", content="answer")
    assert "<workspace_context>\n// File: notes.md\nremember the milk" in result.messages[1].content
    assert result.context.total_bytes == len("remember the milk")
    assert [agent.id for agent in result.agents] == ["manager"]
    session_end = payloads["sessionEnd"]
    assert session_end["status"] == "success"
    assert session_end["error"] is None
    assert session_end["result"] == {"message_count": 3, "agent_count": 1, "context_bytes": 17}
    assert session_end["metadata"]["id"] == result.session_id
    assert payloads["userPromptSubmit"]["prompt"] == "What should I remember?"
    records = read_trace(trace)
    assert {record["sessionId"] for record in records} == {result.session_id}


@pytest.mark.asyncio
async def test_user_prompt_block_aborts_session(make_descriptor) -> None:
    manager = make_descriptor("manager", [[delta("never"), end()]])
    bus = HookBus()
    ends: list[Any] = []
    bus.on(HookEvent.USER_PROMPT_SUBMIT, lambda payload: block_hook("prompt rejected"))
    bus.on(HookEvent.SESSION_END, ends.append)

    with pytest.raises(HookBlockedError, match="prompt rejected") as exc_info:
        await AgentEngine().run("hi", AgentCatalog(manager), hooks=bus, pack_context=False)

    assert exc_info.value.event == "userPromptSubmit"
    assert manager.provider.calls == []
    assert ends[0]["status"] == "error"
    assert ends[0]["error"]["message"] == "prompt rejected"
    assert not bus.has_agent_runner()


@pytest.mark.asyncio
async def test_failing_session_start_listener_raises(make_descriptor) -> None:
    manager = make_descriptor("manager", [[end()]])
    bus = HookBus()

    def broken(payload: Any) -> None:
        raise RuntimeError("cannot start")

    bus.on(HookEvent.SESSION_START, broken)

    with pytest.raises(HookDispatchError, match='Hook "sessionStart" failed: cannot start'):
        await AgentEngine().run("hi", AgentCatalog(manager), hooks=bus, pack_context=False)


@pytest.mark.asyncio
async def test_session_end_failure_raises_after_success(make_descriptor) -> None:
    manager = make_descriptor("manager", [[delta("ok"), end()]])
    bus = HookBus()

    def broken(payload: Any) -> None:
        raise RuntimeError("audit sink down")

    bus.on(HookEvent.SESSION_END, broken)

    with pytest.raises(HookDispatchError, match="audit sink down"):
        await AgentEngine().run("hi", AgentCatalog(manager), hooks=bus, pack_context=False)


@pytest.mark.asyncio
async def test_hooks_can_run_auxiliary_agents(make_descriptor) -> None:
    reviewer = make_descriptor("reviewer", [[delta("looks good"), end()]])
    manager = make_descriptor("manager", [[delta("draft"), end()]])
    bus = HookBus()
    reviews: list[Any] = []
    sessions: list[str | None] = []

    async def review(payload: Any) -> None:
        sessions.append(get_session_id())
        if payload["metadata"]["id"] == "manager":
            reviews.append(await bus.run_agent({"agent_id": "reviewer", "prompt": "Review the draft"}))

    bus.on(HookEvent.AFTER_AGENT_COMPLETE, review)

    result = await AgentEngine().run("write", AgentCatalog(manager, [reviewer]), hooks=bus, pack_context=False)

    assert reviews[0].messages[-1].content == "looks good"
    assert reviews[0].is_root
    assert reviews[0].prompt == "Review the draft"
    assert sessions[0] == result.session_id
    assert get_session_id() is None
    assert not bus.has_agent_runner()


@pytest.mark.asyncio
async def test_hook_modules_are_loaded(make_descriptor, tmp_path: Path) -> None:
    hook_file = tmp_path / "deny_tools.py"
    hook_file.write_text(
        "from agent_engine.hooks import block_hook\n"
        "\n"
        "HOOKS = {'preToolUse': lambda payload: block_hook('no tools today')}\n",
        encoding="utf-8",
    )
    manager = make_descriptor(
        "manager",
        [
            [tool_call("anything", {}, "c1"), end()],
            [delta("ok"), end()],
        ],
    )

    result = await AgentEngine().run(
        "hi",
        AgentCatalog(manager),
        hook_modules=[str(hook_file)],
        pack_context=False,
    )

    assert result.messages[3] == ChatMessage(
        role="tool", content="no tools today", name="anything", tool_call_id="c1"
    )
    assert result.messages[-1].content == "ok"


@pytest.mark.asyncio
async def test_disabled_subagents_hide_spawn_tool(make_descriptor) -> None:
    worker = make_descriptor("worker")
    manager = make_descriptor(
        "manager",
        [[tool_call("spawn_subagent", {"agent": "worker", "prompt": "go"}, "s1"), end()]],
    )

    result = await AgentEngine(settings=Settings(enable_subagents=False)).run(
        "hi", AgentCatalog(manager, [worker]), pack_context=False
    )

    assert manager.provider.calls[0].tools is None
    assert result.agents[0].failed
    assert result.messages[-1].content == "Tool execution failed: Subagent delegation is disabled for this run."
    assert worker.provider.calls == []
