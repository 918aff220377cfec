"""Append-only conversation log persisted through a key-value storage."""
from __future__ import annotations

import io
import json
import logging
import threading
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from .models import Author, Message, Status, default_status, new_message_id, utc_now
from .storage import HISTORY_KEY, KeyValueStorage
from .view import ConversationObserver, observer_or_null

logger = logging.getLogger(__name__)


def _decode_log(raw: Optional[str]) -> List[Message]:
    """Parse a stored log; anything unreadable degrades to fewer messages."""
    if raw is None or not raw.strip():
        return []
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Stored conversation log is not valid JSON, starting fresh: %s", e)
        return []
    if not isinstance(data, list):
        logger.warning("Stored conversation log is a %s, expected a list; starting fresh", type(data).__name__)
        return []

    out: List[Message] = []
    for pos, item in enumerate(data):
        try:
            out.append(Message.from_dict(item))
        except ValueError as e:
            logger.warning("Skipping malformed message #%d in stored log: %s", pos, e)
    return out


class MessageStore:
    """Sole writer of the conversation log.

    The whole log lives in one in-memory list and is written back as a single
    JSON array under ``key`` after every mutation. A failed write leaves the
    in-memory log untouched. The write always happens before the observer is
    notified, so whatever the view shows is already on disk.

    API:
        - load() -> List[Message]
        - append(author, text, status=None) -> Message
        - seed_if_empty(author, text) -> Optional[Message]
        - update_last_user_status(status) -> Optional[Message]
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        observer: Optional[ConversationObserver] = None,
        *,
        key: str = HISTORY_KEY,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.storage = storage
        self.observer = observer_or_null(observer)
        self.key = key
        self._clock = clock or utc_now
        self._new_id = id_factory or new_message_id
        self._log: Optional[List[Message]] = None
        self._lock = threading.RLock()

    # --------- core API ----------
    def load(self) -> List[Message]:
        """Hydrate from storage (once) and return a copy of the log."""
        with self._lock:
            return list(self._ensure_loaded())

    def append(self, author: Author, text: str, status: Optional[Status] = None) -> Message:
        message = self._build(author, text, status)
        with self._lock:
            log = self._ensure_loaded() + [message]
            self._persist(log)
            self._log = log
        self.observer.on_message_appended(message)
        return message

    def seed_if_empty(self, author: Author, text: str) -> Optional[Message]:
        """Append ``text`` only when the log has no messages yet.

        The emptiness check and the write happen under one lock hold, so two
        callers racing on a fresh store seed exactly once. Returns the seeded
        message, or ``None`` when the log already had content.
        """
        with self._lock:
            if self._ensure_loaded():
                return None
            message = self._build(author, text, None)
            log = [message]
            self._persist(log)
            self._log = log
        self.observer.on_message_appended(message)
        return message

    def update_last_user_status(self, new_status: Status) -> Optional[Message]:
        """Move the newest user message forward to ``new_status``.

        Returns the updated message, or ``None`` when there is no user
        message yet or when ``new_status`` would not move it forward.
        """
        new_status = Status(new_status)
        with self._lock:
            log = self._ensure_loaded()
            pos = self._last_user_index(log)
            if pos is None:
                logger.debug("No user message to mark %s", new_status.value)
                return None
            current = log[pos]
            if new_status.rank <= current.status.rank:
                logger.debug(
                    "Ignoring status change %s -> %s for %s",
                    current.status.value, new_status.value, current.id,
                )
                return None
            updated = current.with_status(new_status)
            log = log[:pos] + [updated] + log[pos + 1:]
            self._persist(log)
            self._log = log
        self.observer.on_status_updated(updated.id, new_status)
        return updated

    # --------- convenience ----------
    @property
    def messages(self) -> Tuple[Message, ...]:
        with self._lock:
            return tuple(self._ensure_loaded())

    def last_user_message(self) -> Optional[Message]:
        with self._lock:
            log = self._ensure_loaded()
            pos = self._last_user_index(log)
            return log[pos] if pos is not None else None

    def export_text(self, limit_chars: int = 8000) -> str:
        """Human-readable transcript, one ``author: text`` line per message."""
        buf = io.StringIO()
        for m in self.messages:
            text = m.text.strip()
            if text:
                buf.write(f"{m.author.value}: {text}\n")
        return buf.getvalue()[:limit_chars]

    def __len__(self) -> int:
        return len(self.messages)

    # --------- internals ----------
    def _build(self, author: Author, text: str, status: Optional[Status]) -> Message:
        author = Author(author)
        return Message(
            id=self._new_id(),
            author=author,
            text=text,
            created_at=self._clock(),
            status=Status(status) if status is not None else default_status(author),
        )

    def _ensure_loaded(self) -> List[Message]:
        if self._log is None:
            self._log = _decode_log(self.storage.get(self.key))
        return self._log

    @staticmethod
    def _last_user_index(log: List[Message]) -> Optional[int]:
        for i in range(len(log) - 1, -1, -1):
            if log[i].author is Author.USER:
                return i
        return None

    def _persist(self, log: List[Message]) -> None:
        payload = json.dumps([m.to_dict() for m in log], ensure_ascii=False)
        self.storage.set(self.key, payload)
