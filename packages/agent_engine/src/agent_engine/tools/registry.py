from __future__ import annotations

import json
import logging
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from jsonschema import SchemaError
from jsonschema.validators import validator_for

from agent_engine.errors import (
    ToolExecutionError,
    ToolOutputValidationError,
    ToolRegistrationError,
    ToolValidationError,
    UnknownToolError,
)
from agent_engine.streaming import ToolCallEvent
from agent_engine.utils import maybe_await

logger = logging.getLogger(__name__)

JSONSchema = dict[str, Any]

TOOL_RESULT_ENVELOPE_SCHEMA: JSONSchema = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["schema", "content"],
    "properties": {
        "schema": {"type": "string", "minLength": 1},
        "content": {"type": "string"},
        "data": {},
        "metadata": {"type": "object"},
    },
}


@dataclass(frozen=True)
class ToolResult:
    """Envelope returned by every tool handler."""

    schema: str
    content: str
    data: Any = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the envelope, omitting unset optional fields."""
        payload: dict[str, Any] = {"schema": self.schema, "content": self.content}
        if self.data is not None:
            payload["data"] = self.data
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


@dataclass(frozen=True)
class ToolExecutionContext:
    """Capabilities handed to a tool handler."""

    cwd: str
    confirm: Callable[[str], Awaitable[bool]]
    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))


ToolHandler = Callable[[dict[str, Any], ToolExecutionContext], Any]


@dataclass(frozen=True)
class ToolDefinition:
    """Metadata and handler describing a tool."""

    name: str
    json_schema: JSONSchema
    handler: ToolHandler
    description: str = ""
    output_schema: JSONSchema | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            msg = "ToolDefinition.name must be non-empty"
            raise ToolRegistrationError(msg)

    @property
    def output_schema_id(self) -> str | None:
        """Return the declared ``$id`` of the output schema, if any."""
        if self.output_schema is None:
            return None
        schema_id = self.output_schema.get("$id")
        return schema_id if isinstance(schema_id, str) else None

    def to_schema(self) -> dict[str, Any]:
        """Return the provider-facing function schema."""
        payload: dict[str, Any] = {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.json_schema,
        }
        if self.output_schema is not None:
            payload["outputSchema"] = {
                "type": "json_schema",
                "name": self.output_schema_id,
                "schema": self.output_schema,
                "strict": True,
            }
        return payload


@dataclass(frozen=True)
class RegisteredTool:
    """Tool definition paired with its compiled validators."""

    definition: ToolDefinition
    input_validator: Any
    output_validator: Any | None


def _compile(schema: Mapping[str, Any], label: str, tool: str) -> Any:
    if not isinstance(schema, Mapping):
        message = f'{label} for tool "{tool}" must be a mapping'
        raise ToolRegistrationError(message, tool=tool)
    validator_cls = validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        message = f'{label} for tool "{tool}" is not a valid JSON Schema: {exc.message}'
        raise ToolRegistrationError(message, tool=tool) from exc
    return validator_cls(schema)


def _format_violations(validator: Any, instance: Any) -> list[str]:
    errors = sorted(validator.iter_errors(instance), key=lambda error: list(error.absolute_path))
    violations: list[str] = []
    for error in errors:
        path = "/".join(str(part) for part in error.absolute_path)
        violations.append(f"{path or '(root)'}: {error.message}")
    return violations


_ENVELOPE_VALIDATOR = _compile(TOOL_RESULT_ENVELOPE_SCHEMA, "envelope schema", "<envelope>")


def coerce_tool_arguments(raw: Any) -> Any:
    """Normalize raw tool call arguments.

    Strings are JSON-decoded and the decoded value is returned as is, so a
    non-object payload is left for input validation to reject. Undecodable
    strings become ``{"input": raw}``.
    """
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return {"input": raw}
    if isinstance(raw, Mapping):
        return dict(raw)
    return {}


class ToolRegistry:
    """Validated registry that executes tool handlers."""

    def __init__(self, definitions: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        """Compile schemas and register a tool definition."""
        if definition.name in self._tools:
            message = f"Tool already registered: {definition.name}"
            raise ToolRegistrationError(message, tool=definition.name)
        input_validator = _compile(definition.json_schema, "input schema", definition.name)
        output_validator = None
        if definition.output_schema is not None:
            if definition.output_schema_id is None:
                message = f'Output schema for tool "{definition.name}" must declare a string $id'
                raise ToolRegistrationError(message, tool=definition.name)
            output_validator = _compile(definition.output_schema, "output schema", definition.name)
        self._tools[definition.name] = RegisteredTool(
            definition=definition,
            input_validator=input_validator,
            output_validator=output_validator,
        )

    def get(self, name: str) -> RegisteredTool | None:
        """Get a registered tool by name."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        """Return registered tool names in registration order."""
        return list(self._tools)

    def list(self) -> list[ToolDefinition]:
        """List registered tool definitions."""
        return [entry.definition for entry in self._tools.values()]

    def schemas(self) -> list[dict[str, Any]]:
        """Return provider-facing schemas for every registered tool."""
        return [entry.definition.to_schema() for entry in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def execute(self, call: ToolCallEvent, ctx: ToolExecutionContext) -> ToolResult:
        """Validate arguments, run the handler, and validate its result."""
        entry = self._tools.get(call.name)
        if entry is None:
            raise UnknownToolError(call.name)
        definition = entry.definition

        args = coerce_tool_arguments(call.arguments)
        violations = _format_violations(entry.input_validator, args)
        if violations:
            raise ToolValidationError(definition.name, violations)

        try:
            raw_result = await maybe_await(definition.handler(args, ctx))
        except Exception as exc:
            logger.debug("Tool handler %s raised", definition.name, exc_info=True)
            raise ToolExecutionError(definition.name, exc) from exc

        return self._validate_result(entry, raw_result)

    def _validate_result(self, entry: RegisteredTool, raw_result: Any) -> ToolResult:
        definition = entry.definition
        declared_id = definition.output_schema_id
        envelope = raw_result.to_dict() if isinstance(raw_result, ToolResult) else raw_result
        if not isinstance(envelope, Mapping):
            raise ToolOutputValidationError(
                definition.name,
                declared_id,
                [f"expected a result envelope, got {type(raw_result).__name__}"],
            )
        envelope = dict(envelope)
        violations = _format_violations(_ENVELOPE_VALIDATOR, envelope)
        if violations:
            raise ToolOutputValidationError(definition.name, declared_id, violations)

        if entry.output_validator is not None:
            if envelope["schema"] != declared_id:
                raise ToolOutputValidationError(
                    definition.name,
                    declared_id,
                    [f"schema: expected {declared_id!r}, got {envelope['schema']!r}"],
                )
            data_violations = _format_violations(entry.output_validator, envelope.get("data"))
            if data_violations:
                raise ToolOutputValidationError(definition.name, declared_id, data_violations)

        return ToolResult(
            schema=envelope["schema"],
            content=envelope["content"],
            data=envelope.get("data"),
            metadata=envelope.get("metadata"),
        )


class ToolRegistryFactory:
    """Create a fresh registry per invocation."""

    def create(self, definitions: Iterable[ToolDefinition] = ()) -> ToolRegistry:
        """Return a registry seeded with ``definitions``."""
        return ToolRegistry(definitions)
