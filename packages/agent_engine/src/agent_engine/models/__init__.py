"""Data models for agents, transcripts, packed context and settings."""

from agent_engine.models.agents import (
    AgentCatalog,
    AgentDefinition,
    AgentInvocationOptions,
    AgentRuntimeCatalog,
    AgentRuntimeDescriptor,
    AgentRuntimeMetadata,
)
from agent_engine.models.context import (
    EMPTY_CONTEXT,
    PackedContext,
    PackedFile,
    PackedResource,
)
from agent_engine.models.messages import ChatMessage
from agent_engine.models.settings import Settings, load_settings

__all__ = [
    "EMPTY_CONTEXT",
    "AgentCatalog",
    "AgentDefinition",
    "AgentInvocationOptions",
    "AgentRuntimeCatalog",
    "AgentRuntimeDescriptor",
    "AgentRuntimeMetadata",
    "ChatMessage",
    "PackedContext",
    "PackedFile",
    "PackedResource",
    "Settings",
    "load_settings",
]
