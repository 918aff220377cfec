"""Entry point the widget UI drives: send a message, load the conversation."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .config import coerce_scalar
from .intents import IntentClassifier, build_rules
from .models import Author, Message
from .scheduler import ReplyScheduler, ReplyTiming, Timers
from .storage import HISTORY_KEY, FileStorage, KeyValueStorage, MemoryStorage
from .store import MessageStore
from .view import ConversationObserver

logger = logging.getLogger(__name__)

WELCOME_TEXT = "Hi! I'm the Pidima Assistant. Ask me about your docs or say hello 👋"


class ConversationController:
    def __init__(
        self,
        store: MessageStore,
        scheduler: ReplyScheduler,
        *,
        welcome_text: str = WELCOME_TEXT,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.welcome_text = welcome_text

    def send_user_message(self, text: str) -> Optional[Message]:
        """Append the user's message and start the simulated reply.

        Blank input is ignored and returns ``None``. A conversation that was
        never loaded gets its welcome message first, so the log always opens
        with the assistant. Returns as soon as the message is stored; the
        reply arrives later through the scheduler.
        """
        text = (text or "").strip()
        if not text:
            return None
        self._seed_welcome()
        message = self.store.append(Author.USER, text)
        self.scheduler.simulate_reply(text)
        return message

    def load_or_seed_conversation(self) -> List[Message]:
        self._seed_welcome()
        return self.store.load()

    def _seed_welcome(self) -> None:
        if self.store.seed_if_empty(Author.ASSISTANT, self.welcome_text) is not None:
            logger.info("No stored conversation, seeding welcome message")


# -----------------------------
# Wiring
# -----------------------------
def make_storage(cfg: Dict[str, Any]) -> KeyValueStorage:
    st_cfg = cfg.get("storage", {})
    backend = str(st_cfg.get("backend", "file")).lower()
    if backend == "memory":
        return MemoryStorage()
    if backend != "file":
        raise RuntimeError(f"Unknown storage backend {backend!r} (expected 'file' or 'memory').")
    return FileStorage(st_cfg.get("data_dir") or "data", fsync=bool(st_cfg.get("fsync", True)))


def make_timing(cfg: Dict[str, Any]) -> ReplyTiming:
    t_cfg = cfg.get("timing", {}) or {}
    fields = ReplyTiming.__dataclass_fields__
    unknown = sorted(k for k in t_cfg if k not in fields)
    if unknown:
        logger.warning("Ignoring unknown timing keys: %s", ", ".join(unknown))
    values = {k: coerce_scalar(v) if isinstance(v, str) else v for k, v in t_cfg.items() if k in fields}
    return ReplyTiming(**{k: int(v) for k, v in values.items()})


def build_controller(
    cfg: Dict[str, Any],
    storage: Optional[KeyValueStorage] = None,
    timers: Optional[Timers] = None,
    observer: Optional[ConversationObserver] = None,
) -> ConversationController:
    """Assemble storage, store, classifier and scheduler from a config dict."""
    storage = storage if storage is not None else make_storage(cfg)
    st_cfg = cfg.get("storage", {})
    a_cfg = cfg.get("assistant", {})

    store = MessageStore(storage, observer, key=st_cfg.get("history_key", HISTORY_KEY))
    classifier = IntentClassifier(build_rules(a_cfg.get("name", "Pidima")))
    scheduler = ReplyScheduler(store, classifier, timers=timers, timing=make_timing(cfg))
    return ConversationController(
        store,
        scheduler,
        welcome_text=a_cfg.get("welcome_text") or WELCOME_TEXT,
    )
