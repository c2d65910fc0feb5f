"""Transcript message model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]

ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


@dataclass
class ChatMessage:
    """One role-tagged transcript entry.

    Assistant placeholders for tool calls carry ``name`` and ``tool_call_id``
    with empty content and the coerced call arguments; tool-role entries
    answer them with the same id.
    """

    role: Role
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_arguments: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            msg = f"Unsupported message role: {self.role}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the message, omitting unset optional fields."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_arguments is not None:
            payload["tool_arguments"] = self.tool_arguments
        return payload

    def copy(self) -> ChatMessage:
        """Return a shallow copy of the message."""
        return ChatMessage(
            role=self.role,
            content=self.content,
            name=self.name,
            tool_call_id=self.tool_call_id,
            tool_arguments=dict(self.tool_arguments) if self.tool_arguments is not None else None,
        )

    @classmethod
    def from_value(cls, value: ChatMessage | Mapping[str, Any]) -> ChatMessage:
        """Build a message from a ChatMessage or a plain mapping."""
        if isinstance(value, ChatMessage):
            return value.copy()
        return cls(
            role=value["role"],
            content=str(value.get("content") or ""),
            name=value.get("name"),
            tool_call_id=value.get("tool_call_id"),
            tool_arguments=value.get("tool_arguments"),
        )
