"""Strategy registry that builds compactors from validated configs."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter

from agent_engine.compaction.models import (
    SummarizerCompactorConfig,
    TokenBudgetCompactorConfig,
    TranscriptCompactor,
    TranscriptCompactorConfig,
)
from agent_engine.compaction.summarizing import HttpSummarizer, SummarizingTranscriptCompactor
from agent_engine.compaction.token_budget import TokenBudgetCompactor

CompactorFactory = Callable[[Any, str], TranscriptCompactor]

_CONFIG_ADAPTER: TypeAdapter[Any] = TypeAdapter(TranscriptCompactorConfig)


def parse_compactor_config(raw: Any) -> TokenBudgetCompactorConfig | SummarizerCompactorConfig:
    """Validate a raw mapping into a compactor config."""
    return _CONFIG_ADAPTER.validate_python(raw)


def _create_token_budget(config: TokenBudgetCompactorConfig, _agent_id: str) -> TranscriptCompactor:
    return TokenBudgetCompactor(
        token_budget=config.token_budget,
        keep_tail=config.keep_tail,
        hard_floor=config.hard_floor,
    )


def _create_summarizer(config: SummarizerCompactorConfig, agent_id: str) -> TranscriptCompactor:
    summarizer = HttpSummarizer(config.http, agent_id) if config.http is not None else None
    return SummarizingTranscriptCompactor(
        summarizer=summarizer,
        max_messages=config.max_messages,
        window_size=config.window_size,
        label=config.label,
    )


class CompactorRegistry:
    """Map strategy names to compactor factories."""

    def __init__(self) -> None:
        self._factories: dict[str, CompactorFactory] = {}

    def register(self, strategy: str, factory: CompactorFactory, *, replace: bool = False) -> None:
        if strategy in self._factories and not replace:
            msg = f"Transcript compactor strategy already registered: {strategy}"
            raise ValueError(msg)
        self._factories[strategy] = factory

    def strategies(self) -> list[str]:
        return sorted(self._factories)

    def create(self, config: Any, agent_id: str) -> TranscriptCompactor:
        """Build a compactor for ``agent_id`` from a config model or mapping."""
        if isinstance(config, dict):
            config = parse_compactor_config(config)
        factory = self._factories.get(config.strategy)
        if factory is None:
            msg = f'Unknown transcript compactor strategy "{config.strategy}" for agent {agent_id}'
            raise ValueError(msg)
        return factory(config, agent_id)


def create_default_registry() -> CompactorRegistry:
    """Return a registry with the builtin strategies."""
    registry = CompactorRegistry()
    registry.register("token_budget", _create_token_budget)
    registry.register("summarizer", _create_summarizer)
    return registry
