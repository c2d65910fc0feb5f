"""Model provider adapters.

Adapters implement :class:`agent_engine.streaming.ProviderAdapter`: a ``name``
and an async ``stream(options)`` yielding engine stream events.
"""

from agent_engine.providers.scripted import ScriptedProvider
from agent_engine.providers.strands import (
    StrandsModelConfig,
    StrandsProviderAdapter,
    create_strands_model,
    to_strands_messages,
    to_tool_specs,
)

__all__ = [
    "ScriptedProvider",
    "StrandsModelConfig",
    "StrandsProviderAdapter",
    "create_strands_model",
    "to_strands_messages",
    "to_tool_specs",
]
