"""Jinja2-backed prompt template rendering."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import FileSystemLoader, Template, Undefined
from jinja2.sandbox import SandboxedEnvironment

DEFAULT_ENCODING = "utf-8"


@dataclass(frozen=True)
class TemplateDescriptor:
    """A template file plus optional base directory and default variables."""

    file: str
    base_dir: str | None = None
    encoding: str = DEFAULT_ENCODING
    variables: dict[str, Any] = field(default_factory=dict)

    def resolve_path(self) -> Path:
        """Return the absolute template path."""
        path = Path(self.file)
        if path.is_absolute():
            return path
        base = Path(self.base_dir) if self.base_dir else Path.cwd()
        return (base / path).resolve()


class TemplateRenderer:
    """Render template files and inline strings.

    Environments are cached per search-path set so ``{% include %}`` and
    ``{% extends %}`` resolve relative to the template's directory. Compiled
    file templates are cached by environment and path.
    """

    def __init__(self) -> None:
        self._environments: dict[tuple[str, ...], SandboxedEnvironment] = {}
        self._templates: dict[tuple[tuple[str, ...], str], Template] = {}

    def render_template(
        self,
        descriptor: TemplateDescriptor,
        variables: Mapping[str, Any] | None = None,
    ) -> str:
        """Render the descriptor's file with its defaults overlaid by ``variables``."""
        path = descriptor.resolve_path()
        merged = {**descriptor.variables, **(variables or {})}
        search_paths = self._search_paths(base_dir=descriptor.base_dir, filename=path)
        env = self._environment(search_paths)
        cache_key = (search_paths, str(path))
        template = self._templates.get(cache_key)
        if template is None:
            source = path.read_text(encoding=descriptor.encoding)
            template = env.from_string(source)
            self._templates[cache_key] = template
        return template.render(merged)

    def render_string(
        self,
        template: str,
        variables: Mapping[str, Any] | None = None,
        filename: str | None = None,
    ) -> str:
        """Render an inline template string."""
        search_paths = self._search_paths(filename=Path(filename) if filename else None)
        env = self._environment(search_paths)
        return env.from_string(template).render(dict(variables or {}))

    @staticmethod
    def _search_paths(
        *,
        base_dir: str | None = None,
        filename: Path | None = None,
    ) -> tuple[str, ...]:
        paths: list[str] = []
        if base_dir:
            paths.append(str(Path(base_dir).resolve()))
        if filename is not None:
            parent = str(filename.resolve().parent)
            if parent not in paths:
                paths.append(parent)
        if not paths:
            paths.append(str(Path.cwd()))
        return tuple(paths)

    def _environment(self, search_paths: tuple[str, ...]) -> SandboxedEnvironment:
        env = self._environments.get(search_paths)
        if env is None:
            env = SandboxedEnvironment(
                loader=FileSystemLoader(list(search_paths)),
                autoescape=False,
                undefined=Undefined,
                keep_trailing_newline=True,
            )
            self._environments[search_paths] = env
        return env
