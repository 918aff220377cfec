"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Tuple

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from chat_widget.controller import ConversationController  # noqa: E402
from chat_widget.models import Message, Status  # noqa: E402
from chat_widget.scheduler import ReplyScheduler, VirtualClock  # noqa: E402
from chat_widget.storage import MemoryStorage  # noqa: E402
from chat_widget.store import MessageStore  # noqa: E402


class RecordingObserver:
    """Collects every view callback as a tuple, in call order."""

    def __init__(self) -> None:
        self.events: List[Tuple] = []

    def on_message_appended(self, message: Message) -> None:
        self.events.append(("message", message))

    def on_status_updated(self, message_id: str, status: Status) -> None:
        self.events.append(("status", message_id, status))

    def on_typing_changed(self, is_typing: bool) -> None:
        self.events.append(("typing", is_typing))

    def of(self, kind: str) -> List[Tuple]:
        return [e for e in self.events if e[0] == kind]


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for file-backed storage during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in list(os.environ):
        if var == "CHAT_WIDGET_CONFIG" or var.startswith("CHAT_WIDGET__"):
            monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def store(storage: MemoryStorage, observer: RecordingObserver) -> MessageStore:
    return MessageStore(storage, observer)


@pytest.fixture
def scheduler(store: MessageStore, clock: VirtualClock) -> ReplyScheduler:
    return ReplyScheduler(store, timers=clock)


@pytest.fixture
def controller(store: MessageStore, scheduler: ReplyScheduler) -> ConversationController:
    return ConversationController(store, scheduler)
