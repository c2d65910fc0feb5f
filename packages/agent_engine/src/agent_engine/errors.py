"""Exception hierarchy for the agent engine.

Tool failures are captured into the transcript by the orchestrator; hook
dispatch failures abort the running invocation and propagate to its caller.
"""

from __future__ import annotations

from typing import Any


class AgentEngineError(Exception):
    """Base class for all engine errors."""


class ToolError(AgentEngineError):
    """Base class for tool registry failures."""

    def __init__(self, message: str, *, tool: str | None = None) -> None:
        super().__init__(message)
        self.tool = tool


class ToolRegistrationError(ToolError, ValueError):
    """A tool definition cannot be registered."""


class UnknownToolError(ToolError, LookupError):
    """The requested tool is not registered."""

    def __init__(self, tool: str) -> None:
        super().__init__(f'Tool "{tool}" is not registered.', tool=tool)


class ToolValidationError(ToolError):
    """Tool call arguments do not satisfy the tool's input schema."""

    def __init__(self, tool: str, violations: list[str]) -> None:
        details = "\n".join(f"- {violation}" for violation in violations)
        super().__init__(f'Invalid arguments for tool "{tool}":\n{details}', tool=tool)
        self.violations = violations


class ToolOutputValidationError(ToolError):
    """Tool result envelope, schema id, or structured data failed validation."""

    def __init__(
        self,
        tool: str,
        schema_id: str | None,
        violations: list[str],
    ) -> None:
        label = f' (schema "{schema_id}")' if schema_id else ""
        details = "\n".join(f"- {violation}" for violation in violations)
        super().__init__(f'Tool "{tool}" returned invalid output{label}:\n{details}', tool=tool)
        self.schema_id = schema_id
        self.violations = violations


class ToolExecutionError(ToolError):
    """The tool handler raised."""

    def __init__(self, tool: str, cause: BaseException) -> None:
        super().__init__(f'Tool "{tool}" failed: {cause}', tool=tool)


class HookDispatchError(AgentEngineError):
    """A hook listener raised during a dispatch that must succeed."""

    def __init__(self, event: str, cause: BaseException | Any) -> None:
        super().__init__(f'Hook "{event}" failed: {cause}')
        self.event = event
        self.cause = cause


class HookBlockedError(AgentEngineError):
    """A session-level hook vetoed the run."""

    def __init__(self, event: str, reason: str | None = None) -> None:
        super().__init__(reason or f'Hook "{event}" blocked execution.')
        self.event = event
        self.reason = reason


class ProviderStreamError(AgentEngineError):
    """The provider stream yielded an error event."""

    def __init__(self, message: str, cause: Any = None) -> None:
        super().__init__(message)
        self.cause = cause


class SpawnUnavailableError(AgentEngineError):
    """An invocation tried to spawn a child without an orchestrator binding."""


class UnknownSubagentError(AgentEngineError, LookupError):
    """A delegation targeted an agent missing from the runtime catalog."""


class InvalidStateTransition(AgentEngineError):
    """An invocation was moved between lifecycle states illegally."""


def serialize_error(error: BaseException | Any) -> dict[str, Any]:
    """Serialize an exception (or arbitrary value) for hook payloads and traces."""
    if isinstance(error, BaseException):
        payload: dict[str, Any] = {"message": str(error) or type(error).__name__}
        cause = getattr(error, "cause", None) or error.__cause__
        if cause is not None:
            payload["cause"] = str(cause)
        payload["type"] = type(error).__name__
        return payload
    return {"message": str(error)}
