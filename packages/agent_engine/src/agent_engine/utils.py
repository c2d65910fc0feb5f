"""Shared utilities for the agent engine."""

from __future__ import annotations

import inspect
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any


def utc_timestamp() -> str:
    """Return current UTC timestamp in ISO format.

    Returns:
        ISO-formatted timestamp string.
    """
    return datetime.now(UTC).isoformat()


def is_plain_mapping(value: Any) -> bool:
    """Return True for mapping values that represent JSON objects."""
    return isinstance(value, Mapping)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def to_json(value: Any) -> str:
    """Serialize a value to compact JSON, stringifying unknown objects."""
    return json.dumps(value, default=str, ensure_ascii=False)
