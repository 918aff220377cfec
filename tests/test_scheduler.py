from __future__ import annotations

import asyncio

import pytest

from chat_widget.intents import GREETING_REPLY, classify
from chat_widget.models import Author, Status
from chat_widget.scheduler import (
    AsyncioTimers,
    ReplyScheduler,
    ReplyTiming,
    ScheduledTask,
    VirtualClock,
)
from chat_widget.storage import MemoryStorage
from chat_widget.store import MessageStore


def test_total_delay_is_clamped():
    t = ReplyTiming()
    assert t.total_delay_ms("x") == 600 + 400
    assert t.total_delay_ms("x" * 100) == 600 + 600
    assert t.total_delay_ms("x" * 1000) == 600 + 1400


@pytest.mark.parametrize(
    "kwargs",
    [
        {"delivered_at_ms": 900, "read_at_ms": 600},
        {"read_at_ms": 1000},
        {"min_variable_ms": 2000, "max_variable_ms": 1000},
        {"delivered_at_ms": -1},
    ],
)
def test_invalid_timing_rejected(kwargs):
    with pytest.raises(ValueError):
        ReplyTiming(**kwargs)


def test_virtual_clock_orders_callbacks():
    clock = VirtualClock()
    fired = []
    clock.call_later(0.2, lambda: fired.append("b"))
    clock.call_later(0.1, lambda: fired.append("a"))
    clock.call_later(0.2, lambda: fired.append("c"))
    handle = clock.call_later(0.15, lambda: fired.append("cancelled"))
    handle.cancel()

    assert clock.advance(0.05) == 0
    assert clock.pending == 3
    assert clock.advance(1.0) == 3
    assert fired == ["a", "b", "c"]
    assert clock.now == pytest.approx(1.05)


def test_virtual_clock_refuses_to_go_back():
    with pytest.raises(ValueError):
        VirtualClock().advance(-1)


def test_timeline_fires_in_order(store, scheduler, clock, observer):
    user = store.append(Author.USER, "Hi there")
    observer.events.clear()

    task = scheduler.simulate_reply("Hi there")
    assert task.reply == GREETING_REPLY
    assert observer.events == [("typing", True)]
    assert scheduler.typing

    clock.advance(0.55)
    assert observer.events == [("typing", True)]

    clock.advance(0.1)  # t=0.65
    assert observer.events[-1] == ("status", user.id, Status.DELIVERED)

    clock.advance(0.3)  # t=0.95
    assert observer.events[-1] == ("status", user.id, Status.READ)
    assert len(store) == 1

    clock.run_all()
    kinds = [e[0] for e in observer.events]
    assert kinds == ["typing", "status", "status", "typing", "message"]
    assert observer.events[3] == ("typing", False)
    reply = observer.events[4][1]
    assert reply.author is Author.ASSISTANT and reply.text == GREETING_REPLY
    assert clock.now == pytest.approx(task.delay_ms / 1000.0)
    assert not scheduler.typing
    assert scheduler.pending is None
    assert task.done


def test_reply_waits_for_full_delay(store, scheduler, clock):
    store.append(Author.USER, "hello")
    task = scheduler.simulate_reply("hello")
    clock.advance(task.delay_ms / 1000.0 - 0.05)
    assert [m.author for m in store.load()] == [Author.USER]
    clock.advance(0.1)
    assert [m.author for m in store.load()] == [Author.USER, Author.ASSISTANT]


def test_new_reply_cancels_previous(store, scheduler, clock, observer):
    store.append(Author.USER, "a")
    first = scheduler.simulate_reply("a")
    clock.advance(0.3)
    store.append(Author.USER, "b")
    second = scheduler.simulate_reply("b")

    assert first.cancelled and not first.active
    assert scheduler.pending is second

    clock.run_all()
    replies = [m for m in store.load() if m.author is Author.ASSISTANT]
    assert [m.text for m in replies] == [classify("b")]
    # typing went on once and off once
    assert observer.of("typing") == [("typing", True), ("typing", False)]


def test_cancelled_run_leaves_no_side_effects(store, scheduler, clock, observer):
    store.append(Author.USER, "hello")
    scheduler.simulate_reply("hello")
    snapshot = list(store.load())

    assert scheduler.cancel() is True
    assert not scheduler.typing
    assert clock.run_all() == 0
    assert store.load() == snapshot
    assert observer.of("status") == []
    assert scheduler.cancel() is False


def test_cancelling_finished_task_is_harmless(store, scheduler, clock):
    store.append(Author.USER, "hello")
    task = scheduler.simulate_reply("hello")
    clock.run_all()
    task.cancel()
    assert task.done and not task.cancelled


def test_scheduled_task_cancel_is_idempotent():
    clock = VirtualClock()
    hits = []
    task = ScheduledTask(reply="r", delay_ms=10)
    task.add(clock.call_later(0.01, lambda: hits.append(1)))
    task.cancel()
    task.cancel()
    clock.run_all()
    assert hits == [] and task.cancelled


def test_scheduler_uses_own_observer_when_given(store, clock, observer):
    other = type(observer)()
    scheduler = ReplyScheduler(store, timers=clock, observer=other)
    store.append(Author.USER, "hi")
    scheduler.simulate_reply("hi")
    clock.run_all()
    assert other.of("typing") == [("typing", True), ("typing", False)]
    assert observer.of("typing") == []


def test_asyncio_timers_drive_real_loop():
    timing = ReplyTiming(
        base_delay_ms=20,
        per_char_ms=0,
        min_variable_ms=10,
        max_variable_ms=10,
        delivered_at_ms=5,
        read_at_ms=10,
    )
    store = MessageStore(MemoryStorage())

    async def scenario():
        scheduler = ReplyScheduler(store, timers=AsyncioTimers(), timing=timing)
        store.append(Author.USER, "thanks")
        scheduler.simulate_reply("thanks")
        assert scheduler.typing
        await asyncio.sleep(0.2)
        return scheduler

    scheduler = asyncio.run(scenario())
    history = store.load()
    assert [m.author for m in history] == [Author.USER, Author.ASSISTANT]
    assert history[0].status is Status.READ
    assert not scheduler.typing
