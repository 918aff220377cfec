"""Simulated documentation-assistant chat widget.

Replies are chosen by ordered pattern rules and delivered on a simulated
timeline (typing, delivered, read, reply); the conversation log persists
through a small key-value storage.

Typical usage
-------------
from chat_widget import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

from .controller import ConversationController, build_controller
from .intents import IntentClassifier, IntentRule, classify
from .models import Author, Message, Status
from .scheduler import AsyncioTimers, ReplyScheduler, ReplyTiming, ScheduledTask, VirtualClock
from .storage import FileStorage, MemoryStorage
from .store import MessageStore

__all__ = [
    "Author",
    "AsyncioTimers",
    "ConversationController",
    "FileStorage",
    "IntentClassifier",
    "IntentRule",
    "MemoryStorage",
    "Message",
    "MessageStore",
    "ReplyScheduler",
    "ReplyTiming",
    "ScheduledTask",
    "Status",
    "VirtualClock",
    "build_controller",
    "classify",
    "create_app",
    "__version__",
    "get_version",
]

# ---------------------------------------------------------------------
# Version handling
# ---------------------------------------------------------------------
__version__ = "0.1.0"

def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    Forwards to :func:`chat_widget.server.create_app`; the import is deferred
    so the core can be used without FastAPI installed.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
