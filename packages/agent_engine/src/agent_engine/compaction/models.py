"""Models and protocols for transcript compaction."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, Literal, Protocol

from pydantic import BaseModel, Field, HttpUrl

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.models.agents import AgentRuntimeDescriptor
    from agent_engine.models.messages import ChatMessage


@dataclass(frozen=True)
class TranscriptCompactionResult:
    """Outcome of applying a compaction plan."""

    removed_messages: int | None = None


@dataclass(frozen=True)
class TranscriptCompactionPlan:
    """A pending compaction; ``apply`` mutates the transcript in place."""

    apply: Callable[[], Any]
    reason: str | None = None


class TranscriptCompactor(Protocol):
    """Policy deciding whether an invocation's transcript should shrink."""

    def plan(self, invocation: AgentInvocation, iteration: int) -> Any:
        """Return a plan (or an awaitable resolving to one), or None."""
        ...


CompactorSelectorFn = Callable[["AgentInvocation", "AgentRuntimeDescriptor"], "TranscriptCompactor | None"]
TranscriptCompactorSelector = TranscriptCompactor | CompactorSelectorFn
Summarizer = Callable[[list["ChatMessage"]], Awaitable[str]]


class TokenBudgetCompactorConfig(BaseModel, frozen=True):
    """Keep the transcript under an estimated token budget."""

    strategy: Literal["token_budget"] = "token_budget"
    token_budget: int = Field(gt=0)
    keep_tail: int = Field(default=6, ge=0)
    hard_floor: int | None = Field(default=None, gt=0)


class SummarizerHttpConfig(BaseModel, frozen=True):
    """Remote summarizer endpoint."""

    url: HttpUrl
    method: Literal["POST", "PUT", "PATCH"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int | None = Field(default=None, gt=0)


class SummarizerCompactorConfig(BaseModel, frozen=True):
    """Fold the oldest window of messages into a single summary message."""

    strategy: Literal["summarizer"] = "summarizer"
    max_messages: int = Field(default=600, gt=0)
    window_size: int = Field(default=250, gt=0)
    label: str = "Summary of previous conversation"
    http: SummarizerHttpConfig | None = None


TranscriptCompactorConfig = Annotated[
    TokenBudgetCompactorConfig | SummarizerCompactorConfig,
    Field(discriminator="strategy"),
]


class TranscriptCompactionSettings(BaseModel, frozen=True):
    """Global and per-agent compactor configuration."""

    global_config: TranscriptCompactorConfig | None = Field(default=None, alias="global")
    agents: dict[str, TranscriptCompactorConfig] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
