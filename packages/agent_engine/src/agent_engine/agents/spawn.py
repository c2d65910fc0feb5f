"""The ``spawn_subagent`` tool offered to agents that may delegate."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agent_engine.models.context import PackedContext
from agent_engine.tools.registry import ToolResult, coerce_tool_arguments

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation
    from agent_engine.models.agents import AgentRuntimeCatalog, AgentRuntimeDescriptor

SPAWN_TOOL_NAME = "spawn_subagent"
SPAWN_TOOL_RESULT_SCHEMA = "agent_engine.tool.spawn_subagent.result.v1"

_AGENT_KEYS = ("agent", "agentId", "agent_id", "id", "target")
_PROMPT_KEYS = ("prompt", "message", "input", "instructions")


class SpawnArgumentsError(ValueError):
    """The model called the spawn tool with unusable arguments."""


@dataclass(frozen=True)
class SpawnToolArguments:
    agent: str
    prompt: str
    variables: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class SpawnOverrides:
    """Prompt, variables and context after ``beforeSpawnSubagent`` listeners ran."""

    prompt: str
    variables: dict[str, Any] | None = None
    context: PackedContext | None = None
    context_provided: bool = False


@dataclass(frozen=True)
class SpawnSubagentOverride:
    """Listener result replacing parts of a delegation request.

    Only fields that are set are applied; a mapping with any of the keys
    ``prompt``, ``variables`` or ``context`` is accepted as well.
    """

    prompt: str | None = None
    variables: dict[str, Any] | None = None
    context: PackedContext | None = None
    fields: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, **overrides: Any) -> SpawnSubagentOverride:
        return cls(fields=frozenset(overrides), **overrides)


def _agent_line(descriptor: AgentRuntimeDescriptor) -> str:
    metadata = descriptor.metadata
    label = descriptor.id
    if metadata is not None and metadata.name and metadata.name != descriptor.id:
        label = f"{descriptor.id} ({metadata.name})"
    description = f" - {metadata.description}" if metadata is not None and metadata.description else ""
    return f"- {label}{description}"


def build_spawn_tool_schema(catalog: AgentRuntimeCatalog) -> dict[str, Any] | None:
    """Return the provider-facing schema, or None when delegation is unavailable."""
    if not catalog.enable_subagents:
        return None
    subagents = catalog.list_subagents()
    if not subagents:
        return None
    lines = "\n".join(_agent_line(descriptor) for descriptor in subagents)
    return {
        "type": "function",
        "name": SPAWN_TOOL_NAME,
        "description": (
            "Spawn a configured subagent to handle part of the request.\n"
            f"Available subagents:\n{lines}"
        ),
        "parameters": {
            "type": "object",
            "required": ["agent", "prompt"],
            "additionalProperties": False,
            "properties": {
                "agent": {
                    "type": "string",
                    "description": "Identifier of the configured subagent to launch.",
                },
                "prompt": {
                    "type": "string",
                    "description": "Instructions to send to the delegated subagent.",
                },
                "variables": {
                    "type": "object",
                    "description": "Optional template variables merged into the subagent's prompt context.",
                    "additionalProperties": True,
                },
                "metadata": {
                    "type": "object",
                    "description": "Optional metadata describing the delegation request for auditing.",
                    "additionalProperties": True,
                },
            },
        },
    }


def _first_value(values: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if values.get(key) is not None:
            return values[key]
    return None


def parse_spawn_arguments(raw: Any) -> SpawnToolArguments:
    """Coerce and check spawn tool arguments, accepting common key aliases."""
    values = coerce_tool_arguments(raw)
    if not isinstance(values, Mapping):
        msg = f"{SPAWN_TOOL_NAME} arguments must be a JSON object."
        raise SpawnArgumentsError(msg)
    agent = _first_value(values, _AGENT_KEYS)
    if not isinstance(agent, str) or not agent.strip():
        msg = f'{SPAWN_TOOL_NAME} requires an "agent" property identifying the subagent to spawn.'
        raise SpawnArgumentsError(msg)
    prompt = _first_value(values, _PROMPT_KEYS)
    if not isinstance(prompt, str) or not prompt.strip():
        msg = f'{SPAWN_TOOL_NAME} requires a non-empty "prompt" string describing the task.'
        raise SpawnArgumentsError(msg)
    variables = values.get("variables")
    metadata = values.get("metadata")
    return SpawnToolArguments(
        agent=agent.strip(),
        prompt=prompt,
        variables=dict(variables) if isinstance(variables, Mapping) else None,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
    )


def _override_fields(result: Any) -> dict[str, Any] | None:
    if isinstance(result, SpawnSubagentOverride):
        return {name: getattr(result, name) for name in result.fields}
    if isinstance(result, Mapping) and result.get("blocked") is not True:
        keys = {"prompt", "variables", "context"} & set(result)
        if keys:
            return {key: result[key] for key in keys}
    return None


def apply_spawn_overrides(
    results: Iterable[Any],
    prompt: str,
    variables: dict[str, Any] | None,
) -> SpawnOverrides:
    """Fold listener overrides in registration order; later listeners win."""
    overrides = SpawnOverrides(prompt=prompt, variables=variables)
    for result in results:
        fields = _override_fields(result)
        if fields is None:
            continue
        if fields.get("prompt") is not None:
            overrides.prompt = fields["prompt"]
        if "variables" in fields:
            overrides.variables = fields["variables"]
        if "context" in fields:
            overrides.context = fields["context"]
            overrides.context_provided = True
    return overrides


def _descriptor_metadata(
    descriptor: AgentRuntimeDescriptor,
    parent: AgentRuntimeDescriptor,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "agentId": descriptor.id,
        "model": descriptor.model,
        "provider": descriptor.provider.name,
        "parentAgentId": parent.id,
    }
    extra = descriptor.metadata
    if extra is not None:
        if extra.profile_id:
            metadata["profileId"] = extra.profile_id
        if extra.routing_threshold is not None:
            metadata["routingThreshold"] = extra.routing_threshold
        if extra.name:
            metadata["name"] = extra.name
        if extra.description:
            metadata["description"] = extra.description
    return metadata


def blocked_spawn_result(
    descriptor: AgentRuntimeDescriptor,
    parent: AgentRuntimeDescriptor,
    prompt: str,
    reason: str,
) -> ToolResult:
    """Result returned when ``beforeSpawnSubagent`` vetoes the delegation."""
    metadata = _descriptor_metadata(descriptor, parent)
    metadata["blocked"] = True
    return ToolResult(
        schema=SPAWN_TOOL_RESULT_SCHEMA,
        content=reason,
        data={"agentId": descriptor.id, "messageCount": 0, "prompt": prompt, "blocked": True},
        metadata=metadata,
    )


def _transcript_summary(child: AgentInvocation) -> str | None:
    lines = [
        f"{message.role.capitalize()}: {message.content.strip()}"
        for message in child.messages
        if message.role in ("user", "assistant") and message.content.strip()
    ]
    if not lines:
        return None
    snippet = " | ".join(lines[-2:])
    return snippet if len(snippet) <= 280 else snippet[:277] + "..."


def build_spawn_result(
    child: AgentInvocation,
    descriptor: AgentRuntimeDescriptor,
    parent: AgentRuntimeDescriptor,
    arguments: SpawnToolArguments,
    overrides: SpawnOverrides,
) -> ToolResult:
    """Summarize a finished child invocation as the spawn tool's result."""
    final_text = child.messages[-1].content.strip() if child.messages else ""
    content = final_text or f"Subagent {descriptor.id} completed without a final response."

    metadata = _descriptor_metadata(descriptor, parent)
    if arguments.metadata:
        metadata["request"] = dict(arguments.metadata)
    summary = _transcript_summary(child)
    if summary:
        metadata["transcriptSummary"] = summary
    if final_text:
        metadata["finalMessage"] = final_text

    data: dict[str, Any] = {
        "agentId": descriptor.id,
        "messageCount": len(child.messages),
        "prompt": overrides.prompt,
        "state": child.state.value,
    }
    if final_text:
        data["finalMessage"] = final_text
    if overrides.variables:
        data["variables"] = dict(overrides.variables)
    if overrides.context_provided and overrides.context is not None:
        data["context"] = overrides.context.summary()
    if summary:
        data["transcriptSummary"] = summary
    return ToolResult(schema=SPAWN_TOOL_RESULT_SCHEMA, content=content, data=data, metadata=metadata)
