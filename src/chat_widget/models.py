"""Message records shared by the store, scheduler and view layer."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Author(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Status(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (Status.SENT, Status.DELIVERED, Status.READ)

# Author names written by the earlier browser-only widget.
_LEGACY_AUTHORS = {"me": Author.USER, "bot": Author.ASSISTANT}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    """``<epoch-ms>-<5 hex chars>``; unique enough for a single local log."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"


def default_status(author: Author) -> Status:
    # Assistant messages have no further transition, so they start as read.
    return Status.SENT if author is Author.USER else Status.READ


@dataclass(frozen=True)
class Message:
    """A single entry of the conversation log.

    ``id``, ``author``, ``text`` and ``created_at`` never change once the
    message exists; only ``status`` moves, and only forward.
    """

    id: str
    author: Author
    text: str
    created_at: datetime = field(default_factory=utc_now)
    status: Status = Status.SENT

    def with_status(self, status: Status) -> "Message":
        return Message(
            id=self.id,
            author=self.author,
            text=self.text,
            created_at=self.created_at,
            status=status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author.value,
            "text": self.text,
            "createdAt": self.created_at.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        """Rebuild a message from its stored record.

        Raises
        ------
        ValueError
            If the record is not a dict or a required field is missing or
            has an unknown value.
        """
        if not isinstance(data, dict):
            raise ValueError(f"message record must be a dict, got {type(data).__name__}")

        msg_id = data.get("id")
        text = data.get("text")
        if not isinstance(msg_id, str) or not msg_id:
            raise ValueError("message record has no id")
        if not isinstance(text, str):
            raise ValueError(f"message {msg_id} has no text")

        author = _parse_author(data.get("author"))
        raw_ts = data.get("createdAt", data.get("time"))
        created_at = _parse_timestamp(raw_ts)

        raw_status = data.get("status")
        try:
            status = Status(raw_status) if raw_status is not None else default_status(author)
        except ValueError:
            raise ValueError(f"message {msg_id} has unknown status {raw_status!r}") from None

        return cls(id=msg_id, author=author, text=text, created_at=created_at, status=status)


def _parse_author(raw: Any) -> Author:
    if isinstance(raw, str):
        if raw in _LEGACY_AUTHORS:
            return _LEGACY_AUTHORS[raw]
        try:
            return Author(raw)
        except ValueError:
            pass
    raise ValueError(f"unknown author {raw!r}")


def _parse_timestamp(raw: Optional[Any]) -> datetime:
    if not isinstance(raw, str):
        raise ValueError(f"invalid createdAt {raw!r}")
    # fromisoformat() only learned the trailing "Z" in 3.11
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"invalid createdAt {raw!r}") from None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
