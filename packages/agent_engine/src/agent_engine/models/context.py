"""Packed workspace context models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal


@dataclass(frozen=True)
class PackedFile:
    """A file captured into the packed context."""

    path: str
    bytes: int
    content: str


@dataclass(frozen=True)
class PackedResource:
    """A rendered bundle or template attached to the packed context."""

    id: str
    type: Literal["bundle", "template"]
    text: str
    name: str | None = None
    description: str | None = None
    files: tuple[PackedFile, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PackedContext:
    """Immutable context slice bound to an invocation at spawn time."""

    files: tuple[PackedFile, ...] = ()
    total_bytes: int = 0
    text: str = ""
    resources: tuple[PackedResource, ...] = ()

    def clone(self) -> PackedContext:
        """Return a copy with fresh file and resource containers."""
        return replace(
            self,
            files=tuple(replace(item) for item in self.files),
            resources=tuple(
                replace(
                    resource,
                    files=tuple(replace(item) for item in resource.files),
                    metadata=dict(resource.metadata),
                )
                for resource in self.resources
            ),
        )

    def summary(self) -> dict[str, int]:
        """Return the byte/file summary included in hook payloads."""
        return {"total_bytes": self.total_bytes, "file_count": len(self.files)}


EMPTY_CONTEXT = PackedContext()


def compose_resource_text(resource: PackedResource) -> str:
    """Wrap a resource body with labelled start/end markers."""
    label = resource.name or resource.id
    description = f" - {resource.description}" if resource.description else ""
    body = resource.text.rstrip()
    lines = [f"// Resource: {label}{description}"]
    if body:
        lines.append(body)
    lines.append(f"// End Resource: {label}")
    return "\n".join(lines)
