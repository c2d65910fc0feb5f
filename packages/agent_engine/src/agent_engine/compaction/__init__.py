"""Transcript compaction strategies and service."""

from agent_engine.compaction.models import (
    SummarizerCompactorConfig,
    SummarizerHttpConfig,
    TokenBudgetCompactorConfig,
    TranscriptCompactionPlan,
    TranscriptCompactionResult,
    TranscriptCompactionSettings,
    TranscriptCompactor,
    TranscriptCompactorSelector,
)
from agent_engine.compaction.registry import (
    CompactorRegistry,
    create_default_registry,
    parse_compactor_config,
)
from agent_engine.compaction.service import TranscriptCompactionService
from agent_engine.compaction.summarizing import (
    HttpSummarizer,
    SummarizerHttpError,
    SummarizingTranscriptCompactor,
)
from agent_engine.compaction.token_budget import TokenBudgetCompactor
from agent_engine.compaction.utils import estimate_tokens, estimate_transcript_tokens

__all__ = [
    "CompactorRegistry",
    "HttpSummarizer",
    "SummarizerCompactorConfig",
    "SummarizerHttpConfig",
    "SummarizerHttpError",
    "SummarizingTranscriptCompactor",
    "TokenBudgetCompactor",
    "TokenBudgetCompactorConfig",
    "TranscriptCompactionPlan",
    "TranscriptCompactionResult",
    "TranscriptCompactionService",
    "TranscriptCompactionSettings",
    "TranscriptCompactor",
    "TranscriptCompactorSelector",
    "create_default_registry",
    "estimate_tokens",
    "estimate_transcript_tokens",
    "parse_compactor_config",
]
