from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from src.config.loader import get_str_env

from .store import SQLiteSessionStore

logger = logging.getLogger(__name__)

_SESSION_STORE: Optional[SQLiteSessionStore] = None


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Workspace and user the request acts for.

    Authentication happens upstream; the identity arrives in headers.
    """

    workspace_id: str
    user_id: str


def initialise_session_store() -> SQLiteSessionStore:
    """Create session store instance using configuration."""
    global _SESSION_STORE
    if _SESSION_STORE is not None:
        return _SESSION_STORE

    db_path = get_str_env("SESSION_DB_PATH", "workspace_ai.db")
    store = SQLiteSessionStore(db_path)
    _SESSION_STORE = store
    logger.info("Initialised session store with DB path %s", store.db_path)
    return store


def set_session_store(store: Optional[SQLiteSessionStore]) -> None:
    global _SESSION_STORE
    _SESSION_STORE = store


def get_session_store(_: SQLiteSessionStore = Depends(initialise_session_store)) -> SQLiteSessionStore:
    if _SESSION_STORE is None:
        raise RuntimeError("Session store has not been initialised")
    return _SESSION_STORE


def get_request_context(
    x_workspace_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> RequestContext:
    return RequestContext(
        workspace_id=x_workspace_id or get_str_env("DEFAULT_WORKSPACE_ID", "default"),
        user_id=x_user_id or get_str_env("DEFAULT_USER_ID", "local-user"),
    )
