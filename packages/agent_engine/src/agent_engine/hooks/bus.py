"""Hook event bus with sequential dispatch and listener error isolation."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from agent_engine.hooks.events import HookEvent, is_hook_event_name
from agent_engine.utils import maybe_await

logger = logging.getLogger(__name__)

HookListener = Callable[[Any], Any]
HookAgentRunner = Callable[[Mapping[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class HookBlockResponse:
    """Signal returned by a listener to veto the pending action."""

    reason: str | None = None
    blocked: bool = True


def block_hook(reason: str | None = None) -> HookBlockResponse:
    """Return a block signal with an optional reason."""
    return HookBlockResponse(reason=reason)


def is_hook_block_response(value: Any) -> bool:
    """Return True for block signals (dataclass or ``{"blocked": True}`` mapping)."""
    if isinstance(value, HookBlockResponse):
        return value.blocked is True
    if isinstance(value, Mapping):
        return value.get("blocked") is True
    return False


def as_block_response(value: Any) -> HookBlockResponse:
    """Normalize a block signal into a :class:`HookBlockResponse`."""
    if isinstance(value, HookBlockResponse):
        return value
    reason = value.get("reason")
    return HookBlockResponse(reason=str(reason) if reason is not None else None)


@dataclass
class HookDispatchResult:
    """Aggregated outcome of one dispatch."""

    results: list[Any] = field(default_factory=list)
    blocked: HookBlockResponse | None = None
    error: BaseException | None = None
    errors: list[BaseException] = field(default_factory=list)


def _event_name(event: HookEvent | str) -> str:
    name = event.value if isinstance(event, HookEvent) else str(event)
    if not is_hook_event_name(name):
        message = f"Unknown hook event: {name}"
        raise ValueError(message)
    return name


class HookBus:
    """Named-event publish/subscribe channel for one engine run.

    Listeners may be plain or async callables. They are awaited one at a time
    in registration order; the first block signal ends the dispatch, while a
    raising listener is recorded and its siblings still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[HookListener]] = defaultdict(list)
        self._agent_runner: HookAgentRunner | None = None

    def on(self, event: HookEvent | str, listener: HookListener) -> HookBus:
        """Register a listener for ``event``."""
        if not callable(listener):
            message = f"Hook listener for {event} must be callable"
            raise TypeError(message)
        self._listeners[_event_name(event)].append(listener)
        return self

    def off(self, event: HookEvent | str, listener: HookListener) -> None:
        """Remove a previously registered listener."""
        listeners = self._listeners.get(_event_name(event), [])
        if listener in listeners:
            listeners.remove(listener)

    def listeners(self, event: HookEvent | str) -> list[HookListener]:
        """Return registered listeners for ``event`` in dispatch order."""
        return list(self._listeners.get(_event_name(event), []))

    def listener_count(self, event: HookEvent | str) -> int:
        return len(self._listeners.get(_event_name(event), []))

    async def emit_async(self, event: HookEvent | str, payload: Any) -> HookDispatchResult:
        """Invoke every listener for ``event`` and aggregate their outcome."""
        name = _event_name(event)
        dispatch = HookDispatchResult()
        for listener in list(self._listeners.get(name, [])):
            try:
                result = await maybe_await(listener(payload))
            except Exception as exc:
                logger.exception('Hook "%s" failed: %s', name, exc)
                dispatch.errors.append(exc)
                if dispatch.error is None:
                    dispatch.error = exc
                continue
            dispatch.results.append(result)
            if is_hook_block_response(result):
                dispatch.blocked = as_block_response(result)
                break
        return dispatch

    def set_agent_runner(self, runner: HookAgentRunner) -> None:
        """Bind the capability hooks use to run auxiliary agents."""
        self._agent_runner = runner

    def clear_agent_runner(self) -> None:
        self._agent_runner = None

    def has_agent_runner(self) -> bool:
        return self._agent_runner is not None

    async def run_agent(self, options: Mapping[str, Any]) -> Any:
        """Run an auxiliary agent through the bound runner."""
        if self._agent_runner is None:
            message = "No agent runner is registered for this hook bus."
            raise RuntimeError(message)
        return await self._agent_runner(options)
