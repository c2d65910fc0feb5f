"""Render agent system and user prompts with merged template variables."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from agent_engine.models.agents import AgentDefinition, AgentInvocationOptions
from agent_engine.models.context import PackedContext
from agent_engine.models.messages import ChatMessage
from agent_engine.templates.renderer import TemplateRenderer
from agent_engine.utils import is_plain_mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedSystemPrompt:
    system_prompt: str
    variables: dict[str, Any]


def _merge_value(existing: Any, incoming: Any) -> Any:
    if is_plain_mapping(incoming):
        base = existing if is_plain_mapping(existing) else {}
        merged = dict(base)
        for key, value in incoming.items():
            merged[key] = _merge_value(base.get(key), value)
        return merged
    return incoming


def merge_variables(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Deep-merge variable mappings; later sources win, nested mappings merge."""
    result: dict[str, Any] = {}
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            result[key] = _merge_value(result.get(key), value)
    return result


class TemplateRuntime:
    """Prompt rendering for agent invocations."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer or TemplateRenderer()

    def render_system_prompt(
        self,
        definition: AgentDefinition,
        options: AgentInvocationOptions,
        context: PackedContext,
        history: list[ChatMessage],
        parent_id: str | None = None,
    ) -> RenderedSystemPrompt:
        """Render the system prompt and return it with the merged variables."""
        builtin: dict[str, Any] = {
            "agent": {"id": definition.id},
            "prompt": options.prompt,
            "context": context,
            "history": history,
            "system_prompt": definition.system_prompt,
        }
        if parent_id is not None:
            builtin["parent"] = {"id": parent_id}
        merged = merge_variables(builtin, definition.variables, options.variables)

        if definition.system_prompt_template is not None:
            system_prompt = self._renderer.render_template(definition.system_prompt_template, merged)
        else:
            system_prompt = self._renderer.render_string(definition.system_prompt, merged)

        merged["system_prompt"] = system_prompt
        logger.debug("Rendered system prompt for %s", definition.id)
        return RenderedSystemPrompt(system_prompt=system_prompt, variables=merged)

    def render_user_prompt(
        self,
        definition: AgentDefinition,
        options: AgentInvocationOptions,
        variables: Mapping[str, Any],
    ) -> str:
        """Render the invocation template, the definition template, or the prompt string."""
        template = options.prompt_template or definition.user_prompt_template
        if template is not None:
            logger.debug("Rendering user prompt for %s from template", definition.id)
            return self._renderer.render_template(template, variables)
        return self._renderer.render_string(options.prompt, variables)
