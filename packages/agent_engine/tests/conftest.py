from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pytest

from agent_engine.agents import AgentInvocationFactory, AgentOrchestrator, AgentRuntimeOptions
from agent_engine.hooks import HookBus
from agent_engine.models import AgentCatalog, AgentDefinition, AgentRuntimeDescriptor, AgentRuntimeMetadata
from agent_engine.providers import ScriptedProvider
from agent_engine.tools import ToolDefinition


@pytest.fixture(autouse=True)
def _clear_engine_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("AGENT_ENGINE_"):
            monkeypatch.delenv(key, raising=False)


DescriptorFactory = Callable[..., AgentRuntimeDescriptor]


@pytest.fixture
def make_descriptor() -> DescriptorFactory:
    """Build a descriptor backed by a scripted provider."""

    def _make(
        agent_id: str,
        turns: Iterable[Sequence[Any]] = (),
        *,
        system_prompt: str = "You are {{ agent.id }}.",
        tools: Sequence[ToolDefinition] = (),
        variables: dict[str, Any] | None = None,
        metadata: AgentRuntimeMetadata | None = None,
        model: str = "test-model",
    ) -> AgentRuntimeDescriptor:
        definition = AgentDefinition(
            id=agent_id,
            system_prompt=system_prompt,
            variables=variables or {},
            tools=tuple(tools),
        )
        return AgentRuntimeDescriptor(
            id=agent_id,
            definition=definition,
            model=model,
            provider=ScriptedProvider(turns),
            metadata=metadata,
        )

    return _make


@pytest.fixture
def make_runtime() -> Callable[..., AgentRuntimeOptions]:
    def _make(
        catalog: AgentCatalog,
        hooks: HookBus | None = None,
        **overrides: Any,
    ) -> AgentRuntimeOptions:
        return AgentRuntimeOptions(
            catalog=catalog,
            hooks=hooks or HookBus(),
            logger=logging.getLogger("agent_engine.tests"),
            **overrides,
        )

    return _make


@pytest.fixture
def orchestrator() -> AgentOrchestrator:
    return AgentOrchestrator(AgentInvocationFactory())


def delta(text: str) -> dict[str, Any]:
    return {"type": "delta", "text": text}


def end(**fields: Any) -> dict[str, Any]:
    return {"type": "end", **fields}


def tool_call(name: str, arguments: Any, call_id: str) -> dict[str, Any]:
    return {"type": "tool_call", "name": name, "arguments": arguments, "id": call_id}
