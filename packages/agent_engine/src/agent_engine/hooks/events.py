"""Hook event vocabulary and payload shapes.

Events fire in this order during an engine run:

1. ``sessionStart``
2. ``beforeContextPack`` / ``afterContextPack``
3. ``userPromptSubmit``
4. ``beforeAgentStart``
5. ``preCompact`` (per iteration, when a compaction plan exists)
6. ``beforeModelCall`` (per iteration)
7. ``preToolUse`` → ``beforeSpawnSubagent`` (spawn calls only) → ``postToolUse``
8. ``notification``
9. ``onError`` (provider stream errors) and ``onAgentError`` (tool/model failures)
10. ``stop`` (per completed model turn)
11. ``afterAgentComplete``
12. ``subagentStop`` (non-root agents only)
13. ``sessionEnd``
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypedDict

if TYPE_CHECKING:
    from agent_engine.models.messages import ChatMessage
    from agent_engine.streaming import ErrorEvent, NotificationEvent, ToolCallEvent
    from agent_engine.tools.registry import ToolResult


class HookEvent(StrEnum):
    """Closed set of lifecycle hook events."""

    SESSION_START = "sessionStart"
    BEFORE_CONTEXT_PACK = "beforeContextPack"
    AFTER_CONTEXT_PACK = "afterContextPack"
    USER_PROMPT_SUBMIT = "userPromptSubmit"
    SESSION_END = "sessionEnd"
    BEFORE_AGENT_START = "beforeAgentStart"
    AFTER_AGENT_COMPLETE = "afterAgentComplete"
    ON_AGENT_ERROR = "onAgentError"
    BEFORE_MODEL_CALL = "beforeModelCall"
    PRE_COMPACT = "preCompact"
    PRE_TOOL_USE = "preToolUse"
    BEFORE_SPAWN_SUBAGENT = "beforeSpawnSubagent"
    POST_TOOL_USE = "postToolUse"
    NOTIFICATION = "notification"
    ON_ERROR = "onError"
    STOP = "stop"
    SUBAGENT_STOP = "subagentStop"


HOOK_EVENT_NAMES: tuple[str, ...] = tuple(event.value for event in HookEvent)

LEGACY_EVENT_NAMES: dict[str, HookEvent] = {
    "SessionStart": HookEvent.SESSION_START,
    "UserPromptSubmit": HookEvent.USER_PROMPT_SUBMIT,
    "SessionEnd": HookEvent.SESSION_END,
    "PreCompact": HookEvent.PRE_COMPACT,
    "PreToolUse": HookEvent.PRE_TOOL_USE,
    "BeforeSpawnSubagent": HookEvent.BEFORE_SPAWN_SUBAGENT,
    "PostToolUse": HookEvent.POST_TOOL_USE,
    "Notification": HookEvent.NOTIFICATION,
    "Stop": HookEvent.STOP,
    "SubagentStop": HookEvent.SUBAGENT_STOP,
}


def is_hook_event_name(value: str) -> bool:
    """Return True when ``value`` names a recognized hook event."""
    return value in HOOK_EVENT_NAMES


class AgentMetadata(TypedDict, total=False):
    id: str
    parent_id: str | None
    depth: int
    is_root: bool
    system_prompt: str
    tools: list[str]
    model: str
    provider: str


class AgentContextSummary(TypedDict):
    total_bytes: int
    file_count: int


class AgentLifecyclePayload(TypedDict):
    """Base payload for ``beforeAgentStart`` and ``subagentStop``."""

    metadata: AgentMetadata
    prompt: str
    context: AgentContextSummary
    history_length: int


class AgentIterationPayload(AgentLifecyclePayload):
    """Payload for ``beforeModelCall`` and ``stop``."""

    iteration: int
    messages: list[ChatMessage]


class AgentTranscriptCompactionPayload(AgentIterationPayload, total=False):
    reason: str | None


class AgentCompletionPayload(AgentLifecyclePayload):
    messages: list[ChatMessage]
    iterations: int


class AgentToolCallPayload(AgentIterationPayload):
    """Payload for ``preToolUse``; the only agent-level veto point."""

    event: ToolCallEvent


class AgentToolResultPayload(AgentToolCallPayload):
    result: ToolResult


class AgentStreamErrorPayload(AgentLifecyclePayload):
    iteration: int
    error: ErrorEvent


class AgentErrorPayload(AgentLifecyclePayload):
    error: dict[str, Any]


class AgentNotificationPayload(AgentIterationPayload):
    event: NotificationEvent
