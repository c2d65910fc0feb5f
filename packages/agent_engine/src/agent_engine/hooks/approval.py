"""Tool approval workflow hook.

Provides ToolApprovalHook for blocking tool calls the user does not approve.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from agent_engine.hooks.bus import HookBlockResponse, HookBus, block_hook
from agent_engine.hooks.events import HookEvent

ConfirmCallback = Callable[[str], Awaitable[bool]]


class ToolApprovalHook:
    """Ask for confirmation before running selected tools."""

    def __init__(self, tools: list[str], confirm: ConfirmCallback) -> None:
        """Initialize with the tools requiring approval and a confirm callback."""
        self._tools = set(tools)
        self._confirm = confirm

    def install(self, bus: HookBus) -> None:
        """Register the approval listener for tool calls."""
        bus.on(HookEvent.PRE_TOOL_USE, self.approve)

    async def approve(self, payload: dict[str, Any]) -> HookBlockResponse | None:
        """Block configured tools unless the user confirms them."""
        tool_name = payload["event"].name
        if tool_name not in self._tools:
            return None
        approved = await self._confirm(f"Allow tool {tool_name}?")
        if not approved:
            return block_hook("User denied tool execution")
        return None
