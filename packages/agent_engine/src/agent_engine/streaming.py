"""Provider streaming contract.

Providers yield a lazy, finite, non-restartable sequence of stream events for
one model call. Events are small frozen dataclasses discriminated by ``type``;
adapters may also yield plain mappings with a ``type`` key, which
:func:`coerce_stream_event` converts.

Example:
    async for event in provider.stream(StreamOptions(model="m", messages=msgs)):
        if event.type == "delta":
            print(event.text, end="")
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from agent_engine.models.messages import ChatMessage
    from agent_engine.tools.registry import ToolResult


@dataclass(frozen=True)
class DeltaEvent:
    """Incremental assistant text."""

    text: str
    id: str | None = None
    agent_id: str | None = None
    type: Literal["delta"] = "delta"


@dataclass(frozen=True)
class ToolCallEvent:
    """The model requested a tool execution."""

    name: str
    arguments: Any = field(default_factory=dict)
    id: str | None = None
    raw: Any = None
    agent_id: str | None = None
    type: Literal["tool_call"] = "tool_call"


@dataclass(frozen=True)
class ToolResultEvent:
    """A tool finished; emitted by the orchestrator for renderers."""

    name: str
    result: ToolResult
    id: str | None = None
    agent_id: str | None = None
    type: Literal["tool_result"] = "tool_result"


@dataclass(frozen=True)
class ErrorEvent:
    """The provider failed mid-stream."""

    message: str
    cause: Any = None
    agent_id: str | None = None
    type: Literal["error"] = "error"


@dataclass(frozen=True)
class NotificationEvent:
    """Auxiliary provider or engine notice."""

    payload: Any
    metadata: dict[str, Any] | None = None
    agent_id: str | None = None
    type: Literal["notification"] = "notification"


@dataclass(frozen=True)
class EndEvent:
    """End of one model turn."""

    reason: str | None = None
    usage: dict[str, Any] | None = None
    response_id: str | None = None
    agent_id: str | None = None
    type: Literal["end"] = "end"


StreamEvent = DeltaEvent | ToolCallEvent | ToolResultEvent | ErrorEvent | NotificationEvent | EndEvent

_EVENT_TYPES: dict[str, type] = {
    "delta": DeltaEvent,
    "tool_call": ToolCallEvent,
    "tool_result": ToolResultEvent,
    "error": ErrorEvent,
    "notification": NotificationEvent,
    "end": EndEvent,
}

_FIELD_ALIASES = {"agentId": "agent_id", "responseId": "response_id"}


@dataclass(frozen=True)
class StreamOptions:
    """Arguments for one streaming model call."""

    model: str
    messages: list[ChatMessage]
    tools: list[dict[str, Any]] | None = None
    previous_response_id: str | None = None
    metadata: dict[str, Any] | None = None


@runtime_checkable
class ProviderAdapter(Protocol):
    """Model provider exposing a streaming endpoint."""

    name: str

    def stream(self, options: StreamOptions) -> AsyncIterator[StreamEvent]:
        """Open a streaming call for the given options."""
        ...


def coerce_stream_event(event: StreamEvent | Mapping[str, Any]) -> StreamEvent:
    """Return ``event`` as a typed stream event.

    Raises:
        ValueError: If a mapping carries an unknown ``type``.
    """
    if not isinstance(event, Mapping):
        return event
    event_type = str(event.get("type", ""))
    event_cls = _EVENT_TYPES.get(event_type)
    if event_cls is None:
        msg = f"Unknown stream event type: {event_type!r}"
        raise ValueError(msg)
    kwargs = {
        _FIELD_ALIASES.get(key, key): value for key, value in event.items() if key != "type"
    }
    known = set(event_cls.__dataclass_fields__)
    return event_cls(**{key: value for key, value in kwargs.items() if key in known})
