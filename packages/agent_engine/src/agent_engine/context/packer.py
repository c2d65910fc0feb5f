"""Workspace context packer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path

from agent_engine.context.config import (
    ContextBundleConfig,
    ContextConfig,
    ContextTemplateConfig,
)
from agent_engine.models.context import PackedContext, PackedFile, PackedResource, compose_resource_text
from agent_engine.templates.renderer import TemplateDescriptor, TemplateRenderer

logger = logging.getLogger(__name__)

DEFAULT_TEXT_EXTENSIONS = frozenset(
    {
        "py", "pyi", "toml", "cfg", "ini", "txt", "md", "rst", "json", "jsonc",
        "yaml", "yml", "xml", "html", "htm", "css", "scss", "js", "jsx", "mjs",
        "cjs", "ts", "tsx", "sql", "graphql", "proto", "sh", "bash", "zsh",
        "go", "rs", "rb", "java", "kt", "scala", "c", "h", "cpp", "hpp", "cs",
        "swift", "php", "csv", "tsv", "env", "conf", "lock", "j2", "jinja",
    }
)
DEFAULT_TEXT_FILENAMES = frozenset(
    {"Dockerfile", "Makefile", "Pipfile", "Gemfile", ".gitignore", ".editorconfig", ".env"}
)
DEFAULT_EXCLUDE_PATTERNS = (
    "**/.git/**",
    "**/.hg/**",
    "**/.svn/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/venv/**",
    "**/node_modules/**",
    "**/.mypy_cache/**",
    "**/.pytest_cache/**",
    "**/.ruff_cache/**",
    "**/.tox/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/*.egg-info/**",
)


def matches_pattern(relative_path: str, pattern: str) -> bool:
    """Glob-match a POSIX relative path; a leading ``**/`` also matches the root."""
    if fnmatchcase(relative_path, pattern):
        return True
    return pattern.startswith("**/") and fnmatchcase(relative_path, pattern[3:])


def _matches_any(relative_path: str, patterns: tuple[str, ...] | list[str]) -> bool:
    return any(matches_pattern(relative_path, pattern) for pattern in patterns)


def _is_default_text_file(relative_path: str) -> bool:
    name = relative_path.rsplit("/", 1)[-1]
    if name in DEFAULT_TEXT_FILENAMES or name.startswith(".env."):
        return True
    _, _, extension = name.rpartition(".")
    return bool(extension) and extension.lower() in DEFAULT_TEXT_EXTENSIONS


def iter_candidate_files(base_dir: Path, include: list[str], exclude: tuple[str, ...]) -> list[str]:
    """Return sorted POSIX paths under ``base_dir`` that pass the include/exclude globs."""
    candidates: list[str] = []
    for root, dirs, files in os.walk(base_dir):
        rel_root = Path(root).relative_to(base_dir).as_posix()
        prefix = "" if rel_root == "." else f"{rel_root}/"
        dirs[:] = [name for name in dirs if not _matches_any(f"{prefix}{name}/", exclude)]
        for name in files:
            relative = f"{prefix}{name}"
            if _matches_any(relative, exclude):
                continue
            included = _matches_any(relative, include) if include else _is_default_text_file(relative)
            if included:
                candidates.append(relative)
    return sorted(candidates)


def compose_file_text(files: list[PackedFile] | tuple[PackedFile, ...]) -> str:
    return "\n\n".join(
        f"// File: {item.path}\n{item.content.rstrip()}\n// End of {item.path}" for item in files
    )


@dataclass
class _Budget:
    max_bytes: int
    used: int = 0

    def fits(self, addition: int) -> bool:
        return self.used + addition <= self.max_bytes


class ContextPacker:
    """Collect workspace files and resources into a :class:`PackedContext`.

    The byte total never exceeds ``max_bytes`` and the file list never exceeds
    ``max_files``. Files that would overflow the budget are skipped rather than
    truncated, so smaller files later in the walk can still fit.
    """

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer or TemplateRenderer()

    def pack(self, config: ContextConfig) -> PackedContext:
        base_dir = Path(config.base_dir).resolve()
        exclude = (*DEFAULT_EXCLUDE_PATTERNS, *config.exclude)
        budget = _Budget(max_bytes=config.max_bytes)
        files: list[PackedFile] = []

        for relative in iter_candidate_files(base_dir, config.include, exclude):
            if len(files) >= config.max_files:
                logger.debug("Context file limit reached (%s).", config.max_files)
                break
            packed = self._read_file(base_dir / relative, relative, budget)
            if packed is not None:
                files.append(packed)
                budget.used += packed.bytes

        sections: list[str] = []
        if files:
            sections.append(compose_file_text(files))

        resources: list[PackedResource] = []
        for resource_config in config.resources:
            if isinstance(resource_config, ContextBundleConfig):
                resource = self._load_bundle(resource_config, base_dir, budget)
            else:
                resource = self._load_template(resource_config, config, budget)
            if resource is None:
                continue
            resources.append(resource)
            sections.append(compose_resource_text(resource))

        text = "\n\n".join(section for section in sections if section.strip())
        return PackedContext(
            files=tuple(files),
            total_bytes=budget.used,
            text=text,
            resources=tuple(resources),
        )

    def _read_file(self, path: Path, stored_path: str, budget: _Budget) -> PackedFile | None:
        try:
            if not budget.fits(path.stat().st_size):
                logger.debug("Skipping file beyond budget: %s", stored_path)
                return None
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read context file %s: %s", stored_path, exc)
            return None
        size = len(content.encode("utf-8"))
        if not budget.fits(size):
            logger.debug("Skipping file beyond budget: %s", stored_path)
            return None
        return PackedFile(path=stored_path, bytes=size, content=content)

    def _load_bundle(
        self,
        resource: ContextBundleConfig,
        default_base: Path,
        budget: _Budget,
    ) -> PackedResource | None:
        base_dir = Path(resource.base_dir).resolve() if resource.base_dir else default_base
        exclude = (*DEFAULT_EXCLUDE_PATTERNS, *resource.exclude)
        prefix = resource.virtual_path.replace("\\", "/").rstrip("/") if resource.virtual_path else None
        files: list[PackedFile] = []
        for relative in iter_candidate_files(base_dir, resource.include, exclude):
            stored = f"{prefix}/{relative}" if prefix else relative
            packed = self._read_file(base_dir / relative, stored, budget)
            if packed is not None:
                files.append(packed)
                budget.used += packed.bytes
        if not files:
            return None
        metadata = {"virtual_path": resource.virtual_path} if resource.virtual_path else {}
        return PackedResource(
            id=resource.id,
            type="bundle",
            text=compose_file_text(files),
            name=resource.name,
            description=resource.description,
            files=tuple(files),
            metadata=metadata,
        )

    def _load_template(
        self,
        resource: ContextTemplateConfig,
        config: ContextConfig,
        budget: _Budget,
    ) -> PackedResource | None:
        descriptor = TemplateDescriptor(file=resource.template, base_dir=resource.base_dir or config.base_dir)
        rendered = self._renderer.render_template(descriptor, {**config.variables, **resource.variables})
        text = rendered.rstrip()
        size = len(text.encode("utf-8"))
        if not budget.fits(size):
            logger.debug("Skipping resource template beyond budget: %s", resource.id)
            return None
        budget.used += size
        return PackedResource(
            id=resource.id,
            type="template",
            text=text,
            name=resource.name,
            description=resource.description,
        )
