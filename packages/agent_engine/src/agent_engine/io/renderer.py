"""Human-readable rendering of stream events."""

from __future__ import annotations

import sys
from typing import TextIO

from agent_engine.streaming import (
    DeltaEvent,
    EndEvent,
    ErrorEvent,
    NotificationEvent,
    StreamEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from agent_engine.utils import to_json

_PREVIEW_LIMIT = 200


def _preview(value: object) -> str:
    text = value if isinstance(value, str) else to_json(value)
    return text if len(text) <= _PREVIEW_LIMIT else text[: _PREVIEW_LIMIT - 3] + "..."


class StreamRenderer:
    """Write assistant text and tool activity to a text stream."""

    def __init__(self, output: TextIO | None = None) -> None:
        self._output = output if output is not None else sys.stdout
        self._mid_line = False

    def render(self, event: StreamEvent) -> None:
        if isinstance(event, DeltaEvent):
            if event.text:
                self._output.write(event.text)
                self._mid_line = not event.text.endswith("\n")
            return
        if isinstance(event, ToolCallEvent):
            self._line(f"[tool] {event.name} {_preview(event.arguments)}")
        elif isinstance(event, ToolResultEvent):
            self._line(f"[tool:{event.name}] {_preview(event.result.content)}")
        elif isinstance(event, ErrorEvent):
            self._line(f"[error] {event.message}")
        elif isinstance(event, NotificationEvent):
            self._line(f"[notice] {_preview(event.payload)}")
        elif isinstance(event, EndEvent):
            self.flush()

    def flush(self) -> None:
        """Terminate any partial line and flush the underlying stream."""
        if self._mid_line:
            self._output.write("\n")
            self._mid_line = False
        self._output.flush()

    def _line(self, text: str) -> None:
        if self._mid_line:
            self._output.write("\n")
        self._output.write(text + "\n")
        self._mid_line = False


class NullStreamRenderer(StreamRenderer):
    """Renderer that discards all output."""

    def __init__(self) -> None:
        super().__init__(output=sys.stdout)

    def render(self, event: StreamEvent) -> None:
        return None

    def flush(self) -> None:
        return None
