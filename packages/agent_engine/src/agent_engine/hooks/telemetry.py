"""Tool telemetry tracking for agent runs.

Provides ToolTelemetry for recording tool usage and ToolTelemetryHook
for wiring it onto a hook bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agent_engine.hooks.bus import HookBlockResponse, HookBus, block_hook
from agent_engine.hooks.events import HookEvent
from agent_engine.tools.registry import coerce_tool_arguments


@dataclass
class ToolTelemetry:
    """Track tool usage for a single engine run."""

    active_tool: str | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    completed: list[dict[str, Any]] = field(default_factory=list)
    allow_tools: bool = True

    def reset(self) -> None:
        """Clear tracked tool usage for a new run."""
        self.active_tool = None
        self.tool_calls.clear()
        self.completed.clear()

    def record_call(self, agent_id: str, name: str, arguments: Any) -> None:
        """Record a tool invocation."""
        self.active_tool = name
        self.tool_calls.append({"agent": agent_id, "name": name, "arguments": arguments})

    def record_result(self, agent_id: str, name: str, schema: str) -> None:
        """Record a completed tool invocation."""
        self.active_tool = None
        self.completed.append({"agent": agent_id, "name": name, "schema": schema})

    def set_allow_tools(self, allow: bool) -> None:
        """Enable or disable tool calls for this run."""
        self.allow_tools = allow


class ToolTelemetryHook:
    """Hook listeners collecting tool telemetry."""

    def __init__(self, telemetry: ToolTelemetry) -> None:
        """Attach telemetry storage to hook callbacks."""
        self._telemetry = telemetry

    def install(self, bus: HookBus) -> None:
        """Register listeners for session and tool events."""
        bus.on(HookEvent.SESSION_START, self._reset)
        bus.on(HookEvent.PRE_TOOL_USE, self._record_tool)
        bus.on(HookEvent.POST_TOOL_USE, self._record_result)

    def _reset(self, _payload: Any) -> None:
        """Reset telemetry at the start of each run."""
        self._telemetry.reset()

    def _record_tool(self, payload: dict[str, Any]) -> HookBlockResponse | None:
        """Capture tool usage and optionally block tool calls."""
        if not self._telemetry.allow_tools:
            return block_hook("Tool calls are disabled by user confirmation settings.")
        event = payload["event"]
        self._telemetry.record_call(
            payload["metadata"]["id"], event.name, coerce_tool_arguments(event.arguments)
        )
        return None

    def _record_result(self, payload: dict[str, Any]) -> None:
        self._telemetry.record_result(
            payload["metadata"]["id"], payload["event"].name, payload["result"].schema
        )
