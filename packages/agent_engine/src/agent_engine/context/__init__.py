"""Workspace context packing."""

from agent_engine.context.config import (
    ContextBundleConfig,
    ContextConfig,
    ContextTemplateConfig,
)
from agent_engine.context.packer import ContextPacker, matches_pattern

__all__ = [
    "ContextBundleConfig",
    "ContextConfig",
    "ContextPacker",
    "ContextTemplateConfig",
    "matches_pattern",
]
