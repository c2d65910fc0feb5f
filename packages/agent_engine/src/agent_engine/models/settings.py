"""Pydantic models for engine settings."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel, frozen=True):
    """Runtime configuration loaded from environment variables."""

    trace_path: str | None = None
    trace_append: bool = True
    log_level: str = "INFO"
    enable_subagents: bool = True
    hook_modules: list[str] = Field(default_factory=list)
    # Context packing
    context_base_dir: str = "."
    context_include: list[str] = Field(default_factory=lambda: ["**/*"])
    context_exclude: list[str] = Field(default_factory=list)
    context_max_bytes: int = Field(default=200_000, ge=0)
    context_max_files: int = Field(default=50, ge=0)
    # Transcript compaction
    compactor: str | None = None
    compactor_token_budget: int = Field(default=8_000, gt=0)
    compactor_keep_tail: int = Field(default=8, ge=0)
    summarizer_url: str | None = None


def _parse_list(value: str) -> list[str]:
    """Parse comma-separated string into list."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    load_dotenv()

    include = _parse_list(os.getenv("AGENT_ENGINE_CONTEXT_INCLUDE", ""))

    return Settings(
        trace_path=os.getenv("AGENT_ENGINE_TRACE_PATH") or None,
        trace_append=_parse_bool(os.getenv("AGENT_ENGINE_TRACE_APPEND", "true")),
        log_level=os.getenv("AGENT_ENGINE_LOG_LEVEL", "INFO").upper(),
        enable_subagents=_parse_bool(os.getenv("AGENT_ENGINE_ENABLE_SUBAGENTS", "true")),
        hook_modules=_parse_list(os.getenv("AGENT_ENGINE_HOOKS", "")),
        context_base_dir=os.getenv("AGENT_ENGINE_CONTEXT_DIR", "."),
        context_include=include or ["**/*"],
        context_exclude=_parse_list(os.getenv("AGENT_ENGINE_CONTEXT_EXCLUDE", "")),
        context_max_bytes=int(os.getenv("AGENT_ENGINE_CONTEXT_MAX_BYTES", "200000")),
        context_max_files=int(os.getenv("AGENT_ENGINE_CONTEXT_MAX_FILES", "50")),
        compactor=os.getenv("AGENT_ENGINE_COMPACTOR") or None,
        compactor_token_budget=int(os.getenv("AGENT_ENGINE_COMPACTOR_TOKEN_BUDGET", "8000")),
        compactor_keep_tail=int(os.getenv("AGENT_ENGINE_COMPACTOR_KEEP_TAIL", "8")),
        summarizer_url=os.getenv("AGENT_ENGINE_SUMMARIZER_URL") or None,
    )
