"""Simulated reply timeline: typing indicator, read receipts, delayed reply.

Everything runs on one thread. The only suspension points are timers armed
through a ``Timers`` backend:

    AsyncioTimers   loop.call_later() on the running event loop (server)
    VirtualClock    manual time, advanced explicitly (tests, demos)

One call to ``ReplyScheduler.simulate_reply`` fires, in this order:
typing on -> delivered -> read -> typing off + assistant reply. A newer
call cancels whatever the previous one still had pending.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

from .intents import IntentClassifier
from .models import Author, Status
from .store import MessageStore
from .view import ConversationObserver, observer_or_null

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


# -----------------------------
# Timer backends
# -----------------------------
class AsyncioTimers:
    """Arms timers on an asyncio loop (the running one unless given)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class _VirtualHandle:
    __slots__ = ("when", "order", "callback", "cancelled")

    def __init__(self, when: float, order: int, callback: Callable[[], Any]) -> None:
        self.when = when
        self.order = order
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "_VirtualHandle") -> bool:
        return (self.when, self.order) < (other.when, other.order)


class VirtualClock:
    """Deterministic timer backend driven by ``advance()``.

    Callbacks due at the same instant run in the order they were armed.
    A callback may arm further timers; those fire within the same
    ``advance()`` call if they fall inside the window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)
        self._queue: List[_VirtualHandle] = []
        self._order = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _VirtualHandle:
        handle = _VirtualHandle(self.now + max(0.0, delay), next(self._order), callback)
        heapq.heappush(self._queue, handle)
        return handle

    def advance(self, seconds: float) -> int:
        """Move time forward, running every callback that comes due. Returns how many ran."""
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        deadline = self.now + seconds
        fired = 0
        while self._queue and self._queue[0].when <= deadline:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = handle.when
            handle.callback()
            fired += 1
        self.now = deadline
        return fired

    def run_all(self) -> int:
        fired = 0
        while self.pending:
            nxt = min(h.when for h in self._queue if not h.cancelled)
            fired += self.advance(nxt - self.now)
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for h in self._queue if not h.cancelled)


# -----------------------------
# Timing
# -----------------------------
@dataclass
class ReplyTiming:
    """Delay model, all in milliseconds.

    total = base_delay_ms + clamp(len(reply) * per_char_ms, min_variable_ms, max_variable_ms)

    ``delivered_at_ms`` and ``read_at_ms`` are offsets from the send and must
    land strictly before the earliest possible reply.
    """
    base_delay_ms: int = 600
    per_char_ms: int = 6
    min_variable_ms: int = 400
    max_variable_ms: int = 1400
    delivered_at_ms: int = 600
    read_at_ms: int = 900

    def __post_init__(self) -> None:
        if self.min_variable_ms > self.max_variable_ms:
            raise ValueError("min_variable_ms must not exceed max_variable_ms")
        if not 0 <= self.delivered_at_ms < self.read_at_ms:
            raise ValueError("delivered_at_ms must be >= 0 and before read_at_ms")
        if self.read_at_ms >= self.base_delay_ms + self.min_variable_ms:
            raise ValueError("read_at_ms must be earlier than the shortest reply delay")

    def variable_delay_ms(self, reply: str) -> int:
        return min(self.max_variable_ms, max(self.min_variable_ms, len(reply) * self.per_char_ms))

    def total_delay_ms(self, reply: str) -> int:
        return self.base_delay_ms + self.variable_delay_ms(reply)


# -----------------------------
# Task handle
# -----------------------------
@dataclass
class ScheduledTask:
    """A group of armed timers that is cancelled as one unit."""
    reply: str
    delay_ms: int
    handles: List[TimerHandle] = field(default_factory=list)
    cancelled: bool = False
    done: bool = False

    def add(self, handle: TimerHandle) -> None:
        self.handles.append(handle)

    def cancel(self) -> None:
        if self.cancelled or self.done:
            return
        for h in self.handles:
            h.cancel()
        self.handles.clear()
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.done)


# -----------------------------
# Scheduler
# -----------------------------
class ReplyScheduler:
    """Holds at most one pending reply and plays out its timeline."""

    def __init__(
        self,
        store: MessageStore,
        classifier: Optional[IntentClassifier] = None,
        timers: Optional[Timers] = None,
        timing: Optional[ReplyTiming] = None,
        observer: Optional[ConversationObserver] = None,
    ) -> None:
        self.store = store
        self.classifier = classifier or IntentClassifier()
        self.timers: Timers = timers or AsyncioTimers()
        self.timing = timing or ReplyTiming()
        # Defaults to the store's observer so one view sees everything.
        self.observer = observer_or_null(observer if observer is not None else store.observer)
        self._pending: Optional[ScheduledTask] = None
        self._typing = False

    @property
    def typing(self) -> bool:
        return self._typing

    @property
    def pending(self) -> Optional[ScheduledTask]:
        if self._pending is not None and not self._pending.active:
            self._pending = None
        return self._pending

    def simulate_reply(self, user_text: str) -> ScheduledTask:
        reply = self.classifier.classify(user_text)
        delay_ms = self.timing.total_delay_ms(reply)

        previous = self._pending
        if previous is not None and previous.active:
            logger.debug("Superseding pending reply (%d ms)", previous.delay_ms)
            previous.cancel()

        task = ScheduledTask(reply=reply, delay_ms=delay_ms)
        self._pending = task
        self._set_typing(True)

        t = self.timing
        task.add(self.timers.call_later(t.delivered_at_ms / 1000.0, lambda: self._mark(task, Status.DELIVERED)))
        task.add(self.timers.call_later(t.read_at_ms / 1000.0, lambda: self._mark(task, Status.READ)))
        task.add(self.timers.call_later(delay_ms / 1000.0, lambda: self._deliver(task)))
        logger.debug("Reply scheduled in %d ms: %r", delay_ms, reply[:40])
        return task

    def cancel(self) -> bool:
        """Drop the pending reply, if any, and clear the typing indicator."""
        task = self.pending
        if task is None:
            return False
        task.cancel()
        self._pending = None
        self._set_typing(False)
        return True

    # --------- timeline steps ----------
    # These run on whichever thread fires the timer, the event loop under the
    # server, and write through the store synchronously.
    def _mark(self, task: ScheduledTask, status: Status) -> None:
        if not task.active:
            return
        self.store.update_last_user_status(status)

    def _deliver(self, task: ScheduledTask) -> None:
        if not task.active:
            return
        task.done = True
        task.handles.clear()
        if self._pending is task:
            self._pending = None
        self._set_typing(False)
        self.store.append(Author.ASSISTANT, task.reply)

    def _set_typing(self, value: bool) -> None:
        if self._typing == value:
            return
        self._typing = value
        self.observer.on_typing_changed(value)
