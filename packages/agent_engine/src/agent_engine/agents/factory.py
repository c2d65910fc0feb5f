"""Invocation factory that renders prompts and clones caller-owned state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from agent_engine.agents.invocation import AgentInvocation
from agent_engine.models.agents import AgentDefinition, AgentInvocationOptions
from agent_engine.models.context import EMPTY_CONTEXT
from agent_engine.models.messages import ChatMessage
from agent_engine.templates.runtime import TemplateRuntime
from agent_engine.tools.registry import ToolRegistryFactory


@dataclass(frozen=True)
class AgentInvocationFactory:
    """Build invocations with rendered prompts and isolated context/history."""

    tool_registry_factory: ToolRegistryFactory = field(default_factory=ToolRegistryFactory)
    template_runtime: TemplateRuntime = field(default_factory=TemplateRuntime)

    def create(
        self,
        definition: AgentDefinition,
        options: AgentInvocationOptions,
        parent: AgentInvocation | None = None,
    ) -> AgentInvocation:
        """Render prompts and construct a new invocation under ``parent``."""
        context = (options.context or definition.context or EMPTY_CONTEXT).clone()
        history = [ChatMessage.from_value(message) for message in options.history]

        system = self.template_runtime.render_system_prompt(
            definition,
            options,
            context,
            history,
            parent_id=parent.id if parent is not None else None,
        )
        prompt = self.template_runtime.render_user_prompt(definition, options, system.variables)

        resolved = replace(definition, system_prompt=system.system_prompt)
        return AgentInvocation(
            resolved,
            AgentInvocationOptions(prompt=prompt, context=context, history=history),
            self.tool_registry_factory,
            parent,
        )
