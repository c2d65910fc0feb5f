"""Logging helpers for session correlation."""

from __future__ import annotations

import logging
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

_SESSION_ID: ContextVar[str | None] = ContextVar("agent_engine_session_id", default=None)


def get_session_id() -> str | None:
    """Return the session id bound to the current context, if any."""
    return _SESSION_ID.get()


def bind_session_id(session_id: str | None) -> Token[str | None]:
    """Bind ``session_id`` to the current context; pass the token to reset it."""
    return _SESSION_ID.set(session_id)


def reset_session_id(token: Token[str | None]) -> None:
    _SESSION_ID.reset(token)


class SessionContextFilter(logging.Filter):
    """Attach the active session id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject session_id into the log record."""
        record.session_id = get_session_id() or "-"
        return True


def install_session_log_filter(loggers: Iterable[logging.Logger] | None = None) -> None:
    """Install session context filters for structured logging.

    Args:
        loggers: Optional iterable of loggers to attach the filter to. Defaults to root logger.
    """
    targets = list(loggers) if loggers is not None else [logging.getLogger()]
    for logger in targets:
        if any(isinstance(flt, SessionContextFilter) for flt in logger.filters):
            continue
        logger.addFilter(SessionContextFilter())
