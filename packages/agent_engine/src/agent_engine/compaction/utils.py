"""Utilities shared by transcript compactors."""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence

from agent_engine.models.messages import ChatMessage

MESSAGE_OVERHEAD_TOKENS = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate using a 4 chars per token heuristic."""
    return math.ceil(len(text) / 4) if text else 0


def estimate_transcript_tokens(messages: Sequence[ChatMessage]) -> int:
    """Estimate token usage for a transcript, including per-message overhead."""
    return sum(MESSAGE_OVERHEAD_TOKENS + estimate_tokens(message.content) for message in messages)


def bytes_to_human(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def strip_markdown(value: str) -> str:
    """Drop bold and inline-code markers from a summary."""
    return re.sub(r"`(.*?)`", r"\1", re.sub(r"\*\*(.*?)\*\*", r"\1", value))


def _find_last(
    messages: Sequence[ChatMessage],
    predicate: Callable[[ChatMessage], bool],
    start: int,
) -> ChatMessage | None:
    for index in range(start, -1, -1):
        if predicate(messages[index]):
            return messages[index]
    return None


def take_tail_with_tool_pairs(messages: Sequence[ChatMessage], keep_tail: int) -> list[ChatMessage]:
    """Return the last ``keep_tail`` messages, pulling in the other half of any tool-call pair."""
    tail: list[ChatMessage] = []
    seen: set[int] = set()

    def include(message: ChatMessage) -> None:
        if id(message) in seen:
            return
        tail.insert(0, message)
        seen.add(id(message))

    index = len(messages) - 1
    while index >= 0 and len(tail) < keep_tail:
        message = messages[index]
        include(message)
        call_id = message.tool_call_id
        if call_id and message.role in ("assistant", "tool"):
            partner_role = "tool" if message.role == "assistant" else "assistant"
            match = _find_last(
                messages,
                lambda candidate: candidate.role == partner_role and candidate.tool_call_id == call_id,
                index - 1,
            )
            if match is not None:
                include(match)
        index -= 1

    # Restore transcript order after partner insertions.
    order = {id(message): position for position, message in enumerate(messages)}
    return sorted(tail, key=lambda message: order[id(message)])


def format_transcript_lines(messages: Sequence[ChatMessage]) -> list[str]:
    """Render non-empty messages as ``Role: content`` lines."""
    lines: list[str] = []
    for message in messages:
        content = message.content.strip()
        if not content:
            continue
        role = message.role.capitalize() if message.role in ("user", "assistant") else message.role
        lines.append(f"{role}: {content}")
    return lines


async def preview_summarize(messages: list[ChatMessage]) -> str:
    """Local summarizer: the first four transcript lines, elided after that."""
    lines = format_transcript_lines(messages)
    if not lines:
        return ""
    preview = "\n".join(lines[:4])
    return f"{preview}\n..." if len(lines) > 4 else preview
