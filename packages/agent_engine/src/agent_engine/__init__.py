"""Agent engine: hook-driven orchestration of LLM agent invocation trees.

A manager agent streams from a model provider, calls schema-validated tools
and may delegate to configured subagents through the ``spawn_subagent`` tool.
Lifecycle hooks observe every step and may veto tool calls; each step is
also written to an optional JSON Lines trace.
"""

from agent_engine.agents import (
    AgentInvocation,
    AgentInvocationFactory,
    AgentOrchestrator,
    AgentRunRequest,
    AgentRuntimeOptions,
    InvocationState,
)
from agent_engine.engine import AgentEngine, EngineResult
from agent_engine.errors import (
    AgentEngineError,
    HookBlockedError,
    HookDispatchError,
    InvalidStateTransition,
    ProviderStreamError,
    SpawnUnavailableError,
    ToolError,
    ToolExecutionError,
    ToolOutputValidationError,
    ToolValidationError,
    UnknownSubagentError,
    UnknownToolError,
)
from agent_engine.hooks import HookBus, HookEvent, block_hook
from agent_engine.models import (
    AgentCatalog,
    AgentDefinition,
    AgentInvocationOptions,
    AgentRuntimeDescriptor,
    AgentRuntimeMetadata,
    ChatMessage,
    PackedContext,
    Settings,
    load_settings,
)
from agent_engine.streaming import StreamOptions
from agent_engine.tools import ToolDefinition, ToolRegistry, ToolResult
from agent_engine.utils import utc_timestamp

__all__ = [
    "AgentCatalog",
    "AgentDefinition",
    "AgentEngine",
    "AgentEngineError",
    "AgentInvocation",
    "AgentInvocationFactory",
    "AgentInvocationOptions",
    "AgentOrchestrator",
    "AgentRunRequest",
    "AgentRuntimeDescriptor",
    "AgentRuntimeMetadata",
    "AgentRuntimeOptions",
    "ChatMessage",
    "EngineResult",
    "HookBlockedError",
    "HookBus",
    "HookDispatchError",
    "HookEvent",
    "InvalidStateTransition",
    "InvocationState",
    "PackedContext",
    "ProviderStreamError",
    "Settings",
    "SpawnUnavailableError",
    "StreamOptions",
    "ToolDefinition",
    "ToolError",
    "ToolExecutionError",
    "ToolOutputValidationError",
    "ToolRegistry",
    "ToolResult",
    "ToolValidationError",
    "UnknownSubagentError",
    "UnknownToolError",
    "block_hook",
    "load_settings",
    "utc_timestamp",
]
