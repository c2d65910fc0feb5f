import pytest

from agent_engine.hooks import HookBus, HookEvent, ToolTelemetry, ToolTelemetryHook
from agent_engine.streaming import ToolCallEvent
from agent_engine.tools import ToolResult


def test_tool_telemetry_toggle() -> None:
    telemetry = ToolTelemetry()
    assert telemetry.allow_tools is True
    telemetry.set_allow_tools(False)
    assert telemetry.allow_tools is False


@pytest.mark.asyncio
async def test_tool_telemetry_hook_records_calls() -> None:
    telemetry = ToolTelemetry()
    bus = HookBus()
    ToolTelemetryHook(telemetry).install(bus)
    event = ToolCallEvent(name="read_file", arguments='{"path": "a.md"}')
    metadata = {"id": "manager"}

    await bus.emit_async(HookEvent.PRE_TOOL_USE, {"metadata": metadata, "event": event})
    assert telemetry.active_tool == "read_file"

    await bus.emit_async(
        HookEvent.POST_TOOL_USE,
        {"metadata": metadata, "event": event, "result": ToolResult(schema="files.read.v1", content="")},
    )

    assert telemetry.active_tool is None
    assert telemetry.tool_calls == [{"agent": "manager", "name": "read_file", "arguments": {"path": "a.md"}}]
    assert telemetry.completed == [{"agent": "manager", "name": "read_file", "schema": "files.read.v1"}]

    await bus.emit_async(HookEvent.SESSION_START, {})
    assert telemetry.tool_calls == []


@pytest.mark.asyncio
async def test_tool_telemetry_hook_blocks_when_disabled() -> None:
    telemetry = ToolTelemetry(allow_tools=False)
    bus = HookBus()
    ToolTelemetryHook(telemetry).install(bus)

    dispatch = await bus.emit_async(
        HookEvent.PRE_TOOL_USE,
        {"metadata": {"id": "manager"}, "event": ToolCallEvent(name="read_file")},
    )

    assert dispatch.blocked is not None
    assert dispatch.blocked.reason == "Tool calls are disabled by user confirmation settings."
    assert telemetry.tool_calls == []
