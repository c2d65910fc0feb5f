"""Deterministic provider that replays pre-scripted turns."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from typing import Any

from agent_engine.streaming import ErrorEvent, StreamEvent, StreamOptions, coerce_stream_event

ScriptedTurn = Sequence[StreamEvent | Mapping[str, Any]]


class ScriptedProvider:
    """Replay one scripted turn per model call.

    Every :class:`StreamOptions` received is recorded in ``calls``. When the
    script runs out the provider yields an ``error`` event, so a loop that
    keeps calling the model fails instead of hanging.
    """

    def __init__(self, turns: Iterable[ScriptedTurn] = (), name: str = "scripted") -> None:
        self.name = name
        self._turns: list[ScriptedTurn] = [list(turn) for turn in turns]
        self.calls: list[StreamOptions] = []

    def add_turn(self, turn: ScriptedTurn) -> None:
        self._turns.append(list(turn))

    @property
    def remaining(self) -> int:
        return len(self._turns)

    async def stream(self, options: StreamOptions) -> AsyncIterator[StreamEvent]:
        self.calls.append(options)
        if not self._turns:
            yield ErrorEvent(message=f"{self.name} provider has no scripted turn left")
            return
        for event in self._turns.pop(0):
            yield coerce_stream_event(event)
