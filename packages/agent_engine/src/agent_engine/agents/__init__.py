"""Agent invocations, the orchestrator and the per-invocation run loop.

- AgentInvocation: one agent's transcript, tools and lineage
- AgentInvocationFactory: renders prompts and builds invocations
- AgentOrchestrator: binds runtimes and drives invocation trees
- AgentRunner: the model/tool loop for a single invocation
- spawn_subagent: the delegation tool offered when subagents are configured
"""

from agent_engine.agents.factory import AgentInvocationFactory
from agent_engine.agents.invocation import AgentInvocation, InvocationState, compose_prompt_content
from agent_engine.agents.orchestrator import AgentOrchestrator
from agent_engine.agents.runner import AgentRunner, AgentRunnerOptions
from agent_engine.agents.runtime import AgentRunRequest, AgentRuntimeOptions, deny_all
from agent_engine.agents.spawn import (
    SPAWN_TOOL_NAME,
    SPAWN_TOOL_RESULT_SCHEMA,
    SpawnArgumentsError,
    SpawnSubagentOverride,
    SpawnToolArguments,
    build_spawn_tool_schema,
    parse_spawn_arguments,
)

__all__ = [
    "SPAWN_TOOL_NAME",
    "SPAWN_TOOL_RESULT_SCHEMA",
    "AgentInvocation",
    "AgentInvocationFactory",
    "AgentOrchestrator",
    "AgentRunRequest",
    "AgentRunner",
    "AgentRunnerOptions",
    "AgentRuntimeOptions",
    "InvocationState",
    "SpawnArgumentsError",
    "SpawnSubagentOverride",
    "SpawnToolArguments",
    "build_spawn_tool_schema",
    "compose_prompt_content",
    "deny_all",
    "parse_spawn_arguments",
]
