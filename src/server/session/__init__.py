"""Session management package providing SQLite-backed persistence and APIs."""

from .dependencies import RequestContext, get_request_context, get_session_store
from .models import DEFAULT_SESSION_TITLE, MessageRecord, NewMessage, SessionRecord
from .store import SQLiteSessionStore

__all__ = [
    "DEFAULT_SESSION_TITLE",
    "MessageRecord",
    "NewMessage",
    "RequestContext",
    "SQLiteSessionStore",
    "SessionRecord",
    "get_request_context",
    "get_session_store",
]
