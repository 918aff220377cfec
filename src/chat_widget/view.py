"""Presentation-side state: observer hooks, event feed, theme and panel state.

None of this touches rendering. The core calls a ``ConversationObserver``;
whatever draws the widget (a browser polling ``/events``, a test) reads
from there. Theme and open/closed state are owned here, apart from the
message log.
"""
from __future__ import annotations

import itertools
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol

from .models import Message, Status
from .storage import THEME_KEY, KeyValueStorage


class ConversationObserver(Protocol):
    def on_message_appended(self, message: Message) -> None: ...

    def on_status_updated(self, message_id: str, status: Status) -> None: ...

    def on_typing_changed(self, is_typing: bool) -> None: ...


class NullObserver:
    def on_message_appended(self, message: Message) -> None:
        pass

    def on_status_updated(self, message_id: str, status: Status) -> None:
        pass

    def on_typing_changed(self, is_typing: bool) -> None:
        pass


def status_icon(status: Status) -> str:
    """sent ``•`` / delivered ``✓`` / read ``✓✓``."""
    if status is Status.READ:
        return "✓✓"
    if status is Status.DELIVERED:
        return "✓"
    return "•"


# -----------------------------
# Event feed
# -----------------------------
class EventFeed:
    """Observer that keeps a bounded, numbered list of view events.

    A client remembers the last ``seq`` it saw and asks for ``since(seq)``.
    Once more than ``max_events`` are recorded the oldest are dropped.
    """

    def __init__(self, max_events: int = 500) -> None:
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max(1, int(max_events)))
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self.typing = False

    def _push(self, kind: str, **payload: Any) -> None:
        with self._lock:
            self._events.append({"seq": next(self._seq), "type": kind, **payload})

    def on_message_appended(self, message: Message) -> None:
        self._push("message", message=message.to_dict())

    def on_status_updated(self, message_id: str, status: Status) -> None:
        self._push("status", id=message_id, status=status.value, icon=status_icon(status))

    def on_typing_changed(self, is_typing: bool) -> None:
        self.typing = is_typing
        self._push("typing", typing=is_typing)

    def since(self, seq: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._events if e["seq"] > seq]

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._events[-1]["seq"] if self._events else 0

    def __len__(self) -> int:
        return len(self._events)


# -----------------------------
# Theme / panel
# -----------------------------
class ThemeState:
    """Dark by default; ``light`` only when that is what storage holds."""

    LIGHT = "light"
    DARK = "dark"

    def __init__(self, storage: KeyValueStorage, key: str = THEME_KEY) -> None:
        self._storage = storage
        self._key = key

    @property
    def theme(self) -> str:
        return self.LIGHT if self._storage.get(self._key) == self.LIGHT else self.DARK

    def toggle(self) -> str:
        new = self.DARK if self.theme == self.LIGHT else self.LIGHT
        self._storage.set(self._key, new)
        return new

    @property
    def toggle_label(self) -> str:
        # The button shows the theme you would switch to.
        return "🌙" if self.theme == self.LIGHT else "🌞"


class WidgetState:
    def __init__(self, is_open: bool = False) -> None:
        self.is_open = is_open

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        # A reply still in flight keeps going and lands while hidden.
        self.is_open = False

    def toggle(self) -> bool:
        self.is_open = not self.is_open
        return self.is_open


def observer_or_null(observer: Optional[ConversationObserver]) -> ConversationObserver:
    return observer if observer is not None else NullObserver()
