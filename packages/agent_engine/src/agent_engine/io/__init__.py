"""Trace, rendering and logging helpers."""

from agent_engine.io.logging import (
    SessionContextFilter,
    bind_session_id,
    get_session_id,
    install_session_log_filter,
    reset_session_id,
)
from agent_engine.io.renderer import NullStreamRenderer, StreamRenderer
from agent_engine.io.trace import JsonlTraceWriter, read_trace

__all__ = [
    "JsonlTraceWriter",
    "NullStreamRenderer",
    "SessionContextFilter",
    "StreamRenderer",
    "bind_session_id",
    "get_session_id",
    "install_session_log_filter",
    "read_trace",
    "reset_session_id",
]
