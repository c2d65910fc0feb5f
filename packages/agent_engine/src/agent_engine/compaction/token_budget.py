"""Token-budget transcript compactor."""

from __future__ import annotations

from typing import TYPE_CHECKING

from agent_engine.compaction.models import (
    Summarizer,
    TranscriptCompactionPlan,
    TranscriptCompactionResult,
)
from agent_engine.compaction.utils import (
    bytes_to_human,
    estimate_transcript_tokens,
    preview_summarize,
    strip_markdown,
    take_tail_with_tool_pairs,
)
from agent_engine.models.messages import ChatMessage

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation

DEFAULT_HARD_FLOOR = 2048
TOOL_OUTPUT_ELIDE_CHARS = 800


def resolve_hard_floor(budget: int, explicit: int | None) -> int:
    """Return the floor that lets an over-budget summary be kept.

    An explicit floor is used as given; only the default is capped at the budget.
    """
    if explicit is None or explicit <= 0:
        return min(DEFAULT_HARD_FLOOR, budget)
    return explicit


class TokenBudgetCompactor:
    """Shrink transcripts whose estimated token count exceeds a budget.

    System messages and a tail of ``keep_tail`` messages (with tool-call pairs
    kept together) always survive. Oversized tool outputs in the head are
    elided first; if that is not enough the head is summarized, and if the
    summary still does not fit only system messages and the tail are kept.
    """

    def __init__(
        self,
        token_budget: int,
        keep_tail: int = 6,
        summarize: Summarizer | None = None,
        hard_floor: int | None = None,
    ) -> None:
        if token_budget <= 0:
            msg = "token_budget must be positive"
            raise ValueError(msg)
        self.token_budget = token_budget
        self.keep_tail = keep_tail
        self._summarize = summarize or preview_summarize
        self.hard_floor = resolve_hard_floor(token_budget, hard_floor)

    def plan(self, invocation: AgentInvocation, iteration: int) -> TranscriptCompactionPlan | None:
        tokens = estimate_transcript_tokens(invocation.messages)
        if tokens <= self.token_budget:
            return None

        async def apply() -> TranscriptCompactionResult:
            before = len(invocation.messages)
            await self._compact_in_place(invocation)
            return TranscriptCompactionResult(removed_messages=max(0, before - len(invocation.messages)))

        reason = f"history tokens {tokens} exceeded budget {self.token_budget} on iteration {iteration}"
        return TranscriptCompactionPlan(apply=apply, reason=reason)

    async def _compact_in_place(self, invocation: AgentInvocation) -> None:
        system_messages = [message for message in invocation.messages if message.role == "system"]
        other_messages = [message for message in invocation.messages if message.role != "system"]

        tail = take_tail_with_tool_pairs(other_messages, self.keep_tail)
        tail_ids = {id(message) for message in tail}
        head = [message for message in other_messages if id(message) not in tail_ids]

        for message in head:
            if message.role == "tool" and len(message.content) > TOOL_OUTPUT_ELIDE_CHARS:
                size = len(message.content.encode("utf-8"))
                message.content = f"[tool:{message.name or 'unnamed'} {bytes_to_human(size)} omitted]"

        assembled = [*system_messages, *head, *tail]
        if estimate_transcript_tokens(assembled) > self.token_budget:
            summary_text = strip_markdown(await self._summarize(head) or "")
            content = (
                f"Summary of earlier context:\n{summary_text}"
                if summary_text.strip()
                else "[summary omitted: previous context retained only as tail window]"
            )
            assembled = [*system_messages, ChatMessage(role="assistant", content=content), *tail]

        floor_overrides_budget = self.token_budget < self.hard_floor
        if estimate_transcript_tokens(assembled) <= self.token_budget or floor_overrides_budget:
            invocation.messages[:] = assembled
            return

        invocation.messages[:] = [*system_messages, *tail]
