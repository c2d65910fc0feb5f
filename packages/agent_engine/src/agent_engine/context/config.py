"""Pydantic models for context packing configuration."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

DEFAULT_MAX_BYTES = 250_000
DEFAULT_MAX_FILES = 64


class ContextBundleConfig(BaseModel, frozen=True):
    """A named group of files packed as one resource."""

    type: Literal["bundle"] = "bundle"
    id: str
    name: str | None = None
    description: str | None = None
    base_dir: str | None = None
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    virtual_path: str | None = None


class ContextTemplateConfig(BaseModel, frozen=True):
    """A rendered template packed as one resource."""

    type: Literal["template"] = "template"
    id: str
    name: str | None = None
    description: str | None = None
    template: str
    base_dir: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)


ContextResourceConfig = Annotated[
    ContextBundleConfig | ContextTemplateConfig,
    Field(discriminator="type"),
]


class ContextConfig(BaseModel, frozen=True):
    """Which workspace files to pack and how much of them."""

    base_dir: str = "."
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    max_bytes: int = Field(default=DEFAULT_MAX_BYTES, ge=0)
    max_files: int = Field(default=DEFAULT_MAX_FILES, ge=0)
    variables: dict[str, Any] = Field(default_factory=dict)
    resources: list[ContextResourceConfig] = Field(default_factory=list)
