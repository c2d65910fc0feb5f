"""Provider adapter over a ``strands`` model.

Strands models stream Bedrock-style ``ConverseStream`` chunks. This adapter
converts the engine transcript into strands messages, offers tool schemas as
tool specs and folds the chunks back into engine stream events:

- ``contentBlockDelta.delta.text`` -> ``delta``
- ``contentBlockStart.start.toolUse`` + input deltas + ``contentBlockStop`` -> ``tool_call``
- ``messageStop`` and ``metadata`` -> one ``end`` once the model stream finishes
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from agent_engine.streaming import DeltaEvent, EndEvent, ErrorEvent, StreamEvent, StreamOptions, ToolCallEvent
from agent_engine.tools.registry import coerce_tool_arguments

if TYPE_CHECKING:
    from strands.models.model import Model

    from agent_engine.models.messages import ChatMessage

logger = logging.getLogger(__name__)


class StrandsModelConfig(BaseModel, frozen=True):
    """Declarative strands model selection."""

    type: Literal["bedrock", "anthropic", "openai", "ollama"] = "bedrock"
    model_id: str
    region: str | None = None
    api_key_env: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    streaming: bool = True
    extra: dict[str, Any] = Field(default_factory=dict)


def _require_api_key(env_name: str) -> str:
    api_key = os.getenv(env_name)
    if not api_key:
        msg = f"Missing API key: set {env_name}"
        raise ValueError(msg)
    return api_key


def create_strands_model(config: StrandsModelConfig) -> Model:
    """Instantiate the strands model class for ``config.type``."""
    if config.type == "bedrock":
        from strands.models import BedrockModel  # noqa: PLC0415

        return BedrockModel(
            model_id=config.model_id,
            region_name=config.region or "eu-central-1",
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            streaming=config.streaming,
        )
    if config.type == "anthropic":
        from strands.models.anthropic import AnthropicModel  # noqa: PLC0415

        return AnthropicModel(
            model_id=config.model_id,
            client_args={"api_key": _require_api_key(config.api_key_env or "ANTHROPIC_API_KEY")},
            max_tokens=config.max_tokens or 4096,
            params={"temperature": config.temperature},
        )
    if config.type == "openai":
        from strands.models.openai import OpenAIModel  # noqa: PLC0415

        return OpenAIModel(
            model_id=config.model_id,
            client_args={"api_key": _require_api_key(config.api_key_env or "OPENAI_API_KEY")},
            params={"temperature": config.temperature, "max_tokens": config.max_tokens},
        )
    from strands.models.ollama import OllamaModel  # noqa: PLC0415

    host = config.extra.get("host")
    if not host:
        msg = "Ollama models require extra.host (example: http://ollama:11434)."
        raise ValueError(msg)
    return OllamaModel(host=host, model_id=config.model_id, temperature=config.temperature)


def _append(messages: list[dict[str, Any]], role: str, block: dict[str, Any]) -> None:
    # Converse APIs reject consecutive turns with the same role.
    if messages and messages[-1]["role"] == role:
        messages[-1]["content"].append(block)
    else:
        messages.append({"role": role, "content": [block]})


def to_strands_messages(messages: list[ChatMessage]) -> tuple[list[dict[str, Any]], str | None]:
    """Split a transcript into strands messages and a system prompt."""
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            if message.content.strip():
                system_parts.append(message.content)
            continue
        if message.role == "assistant" and message.tool_call_id and message.name:
            block = {
                "toolUse": {
                    "toolUseId": message.tool_call_id,
                    "name": message.name,
                    "input": message.tool_arguments or {},
                }
            }
            _append(converted, "assistant", block)
            continue
        if message.role == "tool":
            if message.tool_call_id:
                block = {
                    "toolResult": {
                        "toolUseId": message.tool_call_id,
                        "status": "error" if message.content.startswith("Tool execution failed") else "success",
                        "content": [{"text": message.content}],
                    }
                }
            else:
                block = {"text": message.content}
            _append(converted, "user", block)
            continue
        if message.content:
            _append(converted, message.role, {"text": message.content})
    system_prompt = "\n\n".join(system_parts) or None
    return converted, system_prompt


def to_tool_specs(tools: list[dict[str, Any]] | None) -> list[dict[str, Any]] | None:
    """Convert function schemas into strands tool specs."""
    if not tools:
        return None
    return [
        {
            "name": tool["name"],
            "description": tool.get("description") or tool["name"],
            "inputSchema": {"json": tool.get("parameters") or {"type": "object"}},
        }
        for tool in tools
    ]


@dataclass
class _ToolUseBuffer:
    tool_use_id: str | None
    name: str
    input_parts: list[str] = field(default_factory=list)

    def to_event(self, agent_id: str | None) -> ToolCallEvent:
        raw_input = "".join(self.input_parts)
        arguments = coerce_tool_arguments(raw_input) if raw_input.strip() else {}
        return ToolCallEvent(
            name=self.name,
            arguments=arguments,
            id=self.tool_use_id,
            raw={"toolUseId": self.tool_use_id, "name": self.name, "input": raw_input},
            agent_id=agent_id,
        )


@dataclass
class _ChunkState:
    tool_use: _ToolUseBuffer | None = None
    stop_reason: str | None = None
    usage: dict[str, Any] | None = None


def _handle_chunk(chunk: dict[str, Any], state: _ChunkState, agent_id: str | None) -> StreamEvent | None:
    if "contentBlockStart" in chunk:
        tool_use = chunk["contentBlockStart"].get("start", {}).get("toolUse")
        if tool_use:
            state.tool_use = _ToolUseBuffer(tool_use_id=tool_use.get("toolUseId"), name=tool_use.get("name", ""))
        return None
    if "contentBlockDelta" in chunk:
        delta = chunk["contentBlockDelta"].get("delta", {})
        if "text" in delta:
            return DeltaEvent(text=delta["text"], agent_id=agent_id)
        if "toolUse" in delta and state.tool_use is not None:
            state.tool_use.input_parts.append(str(delta["toolUse"].get("input", "")))
        return None
    if "contentBlockStop" in chunk:
        if state.tool_use is not None:
            event = state.tool_use.to_event(agent_id)
            state.tool_use = None
            return event
        return None
    if "messageStop" in chunk:
        state.stop_reason = chunk["messageStop"].get("stopReason")
        return None
    if "metadata" in chunk:
        usage = chunk["metadata"].get("usage")
        if usage is not None:
            state.usage = dict(usage)
    return None


class StrandsProviderAdapter:
    """Stream engine events from a strands ``Model``."""

    def __init__(self, model: Model, name: str = "strands") -> None:
        self.model = model
        self.name = name

    async def stream(self, options: StreamOptions) -> AsyncIterator[StreamEvent]:
        messages, system_prompt = to_strands_messages(options.messages)
        agent_id = (options.metadata or {}).get("agent_id")
        state = _ChunkState()
        try:
            async for chunk in self.model.stream(
                messages,
                tool_specs=to_tool_specs(options.tools),
                system_prompt=system_prompt,
            ):
                event = _handle_chunk(chunk, state, agent_id)
                if event is not None:
                    yield event
        except Exception as exc:
            logger.warning("Strands model stream failed: %s", exc)
            yield ErrorEvent(message=str(exc) or type(exc).__name__, cause=repr(exc), agent_id=agent_id)
            return
        yield EndEvent(reason=state.stop_reason, usage=state.usage, agent_id=agent_id)

