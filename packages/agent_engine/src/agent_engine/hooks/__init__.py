"""Hooks package for agent lifecycle and tool execution.

Provides the hook bus and hook providers for extending agent behavior:
- HookBus: per-run publish/subscribe channel with veto support
- HooksLoader: imports hook modules and attaches them to a bus
- ToolTelemetryHook: tracks tool usage for a run
- ToolApprovalHook: requires user approval for sensitive tools

The ``Agent*Payload`` types describe what listeners receive for each event.
"""

from agent_engine.hooks.approval import ToolApprovalHook
from agent_engine.hooks.bus import (
    HookBlockResponse,
    HookBus,
    HookDispatchResult,
    block_hook,
    is_hook_block_response,
)
from agent_engine.hooks.events import (
    HOOK_EVENT_NAMES,
    AgentCompletionPayload,
    AgentErrorPayload,
    AgentIterationPayload,
    AgentLifecyclePayload,
    AgentNotificationPayload,
    AgentStreamErrorPayload,
    AgentToolCallPayload,
    AgentToolResultPayload,
    AgentTranscriptCompactionPayload,
    HookEvent,
    is_hook_event_name,
)
from agent_engine.hooks.loader import HooksLoader
from agent_engine.hooks.telemetry import ToolTelemetry, ToolTelemetryHook

__all__ = [
    "HOOK_EVENT_NAMES",
    "AgentCompletionPayload",
    "AgentErrorPayload",
    "AgentIterationPayload",
    "AgentLifecyclePayload",
    "AgentNotificationPayload",
    "AgentStreamErrorPayload",
    "AgentToolCallPayload",
    "AgentToolResultPayload",
    "AgentTranscriptCompactionPayload",
    "HookBlockResponse",
    "HookBus",
    "HookDispatchResult",
    "HookEvent",
    "HooksLoader",
    "ToolApprovalHook",
    "ToolTelemetry",
    "ToolTelemetryHook",
    "block_hook",
    "is_hook_block_response",
    "is_hook_event_name",
]
