from __future__ import annotations

import asyncio

import pytest

from persona_chat.domain.context.memory.session_store import SessionStore
from persona_chat.domain.models.chat_state import ImagePart, Role, TextPart, ToolCall, Turn


@pytest.mark.asyncio
async def test_get_or_create_returns_new_empty_session(store) -> None:
    session = await store.get_or_create("s1")

    assert session.id == "s1"
    assert session.turns == []
    assert await store.session_ids() == ["s1"]


@pytest.mark.asyncio
async def test_snapshot_is_not_affected_by_later_appends(store) -> None:
    snapshot = await store.get_or_create("s1")
    await store.append("s1", Turn.user("hello"))

    assert snapshot.turns == []
    assert len((await store.get_or_create("s1")).turns) == 1


@pytest.mark.asyncio
async def test_turn_round_trip_preserves_parts_and_tool_metadata(store) -> None:
    call = ToolCall(id="call-1", name="lookup", arguments={"q": "tcp", "limit": 2})
    turns = [
        Turn.user("look at this", [ImagePart(url="https://img/1.png"), TextPart(text="and this")]),
        Turn.assistant("", [call]),
        Turn.tool(call, "Error: boom", is_error=True),
    ]
    await store.append_many("s1", turns)

    history = await store.history("s1")

    assert history == tuple(turns)
    assert [type(p) for p in history[0].parts] == [TextPart, ImagePart, TextPart]
    assert history[1].tool_calls[0].arguments == {"q": "tcp", "limit": 2}
    assert history[2].role == Role.TOOL
    assert history[2].tool_call_id == "call-1"
    assert history[2].is_error is True


@pytest.mark.asyncio
async def test_history_truncates_from_oldest_end(store) -> None:
    turns = [Turn.user(f"m{i}") for i in range(5)]
    await store.append_many("s1", turns)

    assert [t.text for t in await store.history("s1", 2)] == ["m3", "m4"]


@pytest.mark.asyncio
async def test_history_boundaries(store) -> None:
    turns = [Turn.user("a"), Turn.assistant("b")]
    await store.append_many("s1", turns)

    assert await store.history("s1", 0) == ()
    assert await store.history("s1", 10) == tuple(turns)
    assert await store.history("missing") == ()
    with pytest.raises(ValueError):
        await store.history("s1", -1)


@pytest.mark.asyncio
async def test_idle_sessions_are_evicted_after_ttl(store, clock) -> None:
    await store.append("old", Turn.user("hi"))
    clock.advance(30)
    await store.append("fresh", Turn.user("hi"))
    clock.advance(31)

    evicted = await store.evict_expired()

    assert evicted == ["old"]
    assert await store.history("old") == ()
    assert len(await store.history("fresh")) == 1


@pytest.mark.asyncio
async def test_sessions_with_active_request_are_not_evicted(store, clock) -> None:
    await store.append("busy", Turn.user("hi"))
    clock.advance(120)

    async with store.session_lock("busy"):
        assert await store.evict_expired() == []

    assert await store.evict_expired() == ["busy"]


@pytest.mark.asyncio
async def test_expired_session_is_recreated_empty(store, clock) -> None:
    await store.append("s1", Turn.user("hi"))
    clock.advance(61)

    session = await store.get_or_create("s1")

    assert session.turns == []


@pytest.mark.asyncio
async def test_close_removes_session(store) -> None:
    await store.append("s1", Turn.user("hi"))

    assert await store.close("s1") is True
    assert await store.close("s1") is False
    assert await store.history("s1") == ()


@pytest.mark.asyncio
async def test_concurrent_batches_do_not_interleave(store) -> None:
    batch_a = [Turn.user(f"a{i}") for i in range(3)]
    batch_b = [Turn.user(f"b{i}") for i in range(3)]

    await asyncio.gather(store.append_many("s1", batch_a), store.append_many("s1", batch_b))

    texts = [t.text for t in await store.history("s1")]
    assert texts in (["a0", "a1", "a2", "b0", "b1", "b2"], ["b0", "b1", "b2", "a0", "a1", "a2"])


@pytest.mark.asyncio
async def test_close_between_holders_keeps_requests_serialized(store) -> None:
    active = 0
    peak = 0

    async def request(follow_up: bool) -> None:
        nonlocal active, peak
        async with store.session_lock("s1"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
        # The queued request has been handed the lock but has not resumed yet
        await store.close("s1")
        if follow_up:
            await request(False)

    await asyncio.gather(request(True), request(False))

    assert peak == 1
    assert not store.is_busy("s1")


@pytest.mark.asyncio
async def test_waiting_request_counts_as_busy(store, clock) -> None:
    await store.append("s1", Turn.user("hi"))
    clock.advance(120)
    entered = asyncio.Event()
    release = asyncio.Event()

    async def holder() -> None:
        async with store.session_lock("s1"):
            entered.set()
            await release.wait()

    async def waiter() -> None:
        async with store.session_lock("s1"):
            pass

    tasks = [asyncio.create_task(holder()), asyncio.create_task(waiter())]
    await entered.wait()
    await asyncio.sleep(0)

    assert await store.evict_expired() == []
    release.set()
    await asyncio.gather(*tasks)
    assert not store.is_busy("s1")
    assert await store.evict_expired() == ["s1"]


@pytest.mark.asyncio
async def test_owner_resets_expired_session(store, clock) -> None:
    await store.append("s1", Turn.user("hi"))
    clock.advance(61)

    async with store.session_lock("s1"):
        assert (await store.get_or_create("s1", owned=True)).turns == []
        await store.append("s1", Turn.user("again"))

    assert [t.text for t in await store.history("s1")] == ["again"]


@pytest.mark.asyncio
async def test_eviction_loop_survives_a_failed_sweep(clock) -> None:
    class FlakyStore(SessionStore):
        def __init__(self) -> None:
            super().__init__(ttl_seconds=60, clock=clock)
            self.sweeps = 0
            self.recovered = asyncio.Event()

        async def evict_expired(self):
            self.sweeps += 1
            if self.sweeps == 1:
                raise RuntimeError("sweep failed")
            self.recovered.set()
            return []

    store = FlakyStore()
    task = asyncio.create_task(store.run_eviction(interval_seconds=0.001))
    try:
        await asyncio.wait_for(store.recovered.wait(), timeout=2)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert store.sweeps >= 2
