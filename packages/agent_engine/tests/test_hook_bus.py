from typing import Any

import pytest

from agent_engine.hooks import HookBlockResponse, HookBus, HookEvent, block_hook, is_hook_block_response


@pytest.mark.asyncio
async def test_listeners_run_in_registration_order() -> None:
    bus = HookBus()
    order: list[str] = []

    async def second(payload: Any) -> None:
        order.append(f"second:{payload['n']}")

    bus.on(HookEvent.STOP, lambda payload: order.append(f"first:{payload['n']}"))
    bus.on(HookEvent.STOP, second)

    dispatch = await bus.emit_async(HookEvent.STOP, {"n": 1})

    assert order == ["first:1", "second:1"]
    assert dispatch.blocked is None
    assert dispatch.error is None
    assert len(dispatch.results) == 2


@pytest.mark.asyncio
async def test_first_block_short_circuits() -> None:
    bus = HookBus()
    seen: list[str] = []

    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: seen.append("audit"))
    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: block_hook("policy veto"))
    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: seen.append("never"))

    dispatch = await bus.emit_async(HookEvent.PRE_TOOL_USE, {})

    assert seen == ["audit"]
    assert dispatch.blocked == HookBlockResponse(reason="policy veto")


@pytest.mark.asyncio
async def test_mapping_block_signal_is_accepted() -> None:
    bus = HookBus()
    bus.on(HookEvent.PRE_TOOL_USE, lambda payload: {"blocked": True, "reason": "nope"})

    dispatch = await bus.emit_async(HookEvent.PRE_TOOL_USE, {})

    assert dispatch.blocked is not None
    assert dispatch.blocked.reason == "nope"


@pytest.mark.asyncio
async def test_listener_errors_are_isolated() -> None:
    bus = HookBus()
    calls: list[str] = []

    def broken(payload: Any) -> None:
        raise ValueError("first failure")

    async def also_broken(payload: Any) -> None:
        raise RuntimeError("second failure")

    bus.on(HookEvent.NOTIFICATION, broken)
    bus.on(HookEvent.NOTIFICATION, also_broken)
    bus.on(HookEvent.NOTIFICATION, lambda payload: calls.append("ran"))

    dispatch = await bus.emit_async(HookEvent.NOTIFICATION, {})

    assert calls == ["ran"]
    assert isinstance(dispatch.error, ValueError)
    assert [type(error) for error in dispatch.errors] == [ValueError, RuntimeError]


@pytest.mark.asyncio
async def test_emit_without_listeners() -> None:
    dispatch = await HookBus().emit_async("sessionStart", {})

    assert dispatch.results == []
    assert dispatch.blocked is None


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown hook event: BeforeLunch"):
        HookBus().on("BeforeLunch", lambda payload: None)


def test_off_removes_listener() -> None:
    bus = HookBus()

    def listener(payload: Any) -> None:
        return None

    bus.on(HookEvent.STOP, listener)
    bus.off(HookEvent.STOP, listener)

    assert bus.listener_count(HookEvent.STOP) == 0


def test_block_detection() -> None:
    assert is_hook_block_response(block_hook())
    assert is_hook_block_response({"blocked": True})
    assert not is_hook_block_response({"blocked": "yes"})
    assert not is_hook_block_response(None)


@pytest.mark.asyncio
async def test_agent_runner_capability() -> None:
    bus = HookBus()

    with pytest.raises(RuntimeError, match="No agent runner"):
        await bus.run_agent({"agent_id": "reviewer"})

    async def runner(options: Any) -> str:
        return f"ran {options['agent_id']}"

    bus.set_agent_runner(runner)
    assert await bus.run_agent({"agent_id": "reviewer"}) == "ran reviewer"

    bus.clear_agent_runner()
    assert not bus.has_agent_runner()
