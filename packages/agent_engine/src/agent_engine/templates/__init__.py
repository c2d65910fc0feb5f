"""Prompt templating."""

from agent_engine.templates.renderer import TemplateDescriptor, TemplateRenderer
from agent_engine.templates.runtime import RenderedSystemPrompt, TemplateRuntime, merge_variables

__all__ = [
    "RenderedSystemPrompt",
    "TemplateDescriptor",
    "TemplateRenderer",
    "TemplateRuntime",
    "merge_variables",
]
