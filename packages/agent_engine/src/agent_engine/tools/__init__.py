"""Tools package for the agent engine.

This package provides:
- ToolDefinition: name, description, input/output JSON Schemas and handler
- ToolRegistry: validates arguments and result envelopes around each handler
- ToolRegistryFactory: builds the per-invocation registry

Every handler returns the ``{schema, content, data?, metadata?}`` envelope.
"""

from agent_engine.tools.registry import (
    TOOL_RESULT_ENVELOPE_SCHEMA,
    RegisteredTool,
    ToolDefinition,
    ToolExecutionContext,
    ToolRegistry,
    ToolRegistryFactory,
    ToolResult,
    coerce_tool_arguments,
)

__all__ = [
    "TOOL_RESULT_ENVELOPE_SCHEMA",
    "RegisteredTool",
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolRegistry",
    "ToolRegistryFactory",
    "ToolResult",
    "coerce_tool_arguments",
]
