from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional
from uuid import uuid4

from src.errors import PersistenceError

from .models import DEFAULT_SESSION_TITLE, MessageRecord, NewMessage, SessionRecord

logger = logging.getLogger(__name__)


_SESSIONS_DDL = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    page_id TEXT,
    title TEXT NOT NULL,
    thread_id TEXT,
    selected_page_ids TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    thinking TEXT,
    sources TEXT NOT NULL DEFAULT '[]',
    message_type TEXT NOT NULL DEFAULT 'chat',
    tool_calls TEXT,
    tool_call_id TEXT,
    tool_name TEXT,
    tool_status TEXT,
    clarification INTEGER NOT NULL DEFAULT 0,
    seq INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_sessions_owner_updated ON sessions(workspace_id, user_id, updated_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_sessions_thread ON sessions(thread_id);",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_session_seq ON messages(session_id, seq);",
]

_SESSION_COLUMNS = (
    "id, workspace_id, user_id, page_id, title, thread_id, selected_page_ids, created_at, updated_at"
)
_MESSAGE_COLUMNS = (
    "id, session_id, role, content, thinking, sources, message_type, tool_calls, "
    "tool_call_id, tool_name, tool_status, clarification, seq, created_at"
)


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


class SQLiteSessionStore:
    """SQLite-backed repository for chat sessions and messages.

    Messages are append-mostly: the only mutation of persisted content is
    :meth:`truncate_from`, which removes a message and everything after it.
    """

    def __init__(self, db_path: str) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.suffix != ".db":
            path = path.with_suffix(".db")
        self._db_path = str(path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def init(self) -> None:
        """Initialise database schema."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with sqlite3.connect(self._db_path) as connection:
                _ensure_pragmas(connection)
                connection.execute(_SESSIONS_DDL)
                connection.execute(_MESSAGES_DDL)
                for statement in _CREATE_INDEXES:
                    connection.execute(statement)
                connection.commit()

        await asyncio.to_thread(_init)
        logger.info("Session database initialised at %s", self._db_path)

    async def close(self) -> None:  # pragma: no cover - compatibility placeholder
        return None

    async def create_session(
        self,
        *,
        workspace_id: str,
        user_id: str,
        page_id: Optional[str] = None,
        title: str = DEFAULT_SESSION_TITLE,
    ) -> SessionRecord:
        session_id = uuid4().hex
        now = _utc_now_str()

        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (session_id, workspace_id, user_id, page_id, title, None, "[]", now, now),
            )

        return SessionRecord(
            id=session_id,
            workspace_id=workspace_id,
            user_id=user_id,
            page_id=page_id,
            title=title,
            thread_id=None,
            selected_page_ids=[],
            created_at=_parse_ts(now),
            updated_at=_parse_ts(now),
        )

    async def list_sessions(
        self, *, workspace_id: str, user_id: str, limit: int = 20
    ) -> list[SessionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE workspace_id = ? AND user_id = ? "
            "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
            (workspace_id, user_id, limit),
        )
        return [self._row_to_session(row) for row in rows]

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?",
            (session_id,),
        )
        return self._row_to_session(row) if row else None

    async def get_session_by_thread(self, thread_id: str) -> Optional[SessionRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE thread_id = ?",
            (thread_id,),
        )
        return self._row_to_session(row) if row else None

    async def get_messages(self, session_id: str) -> list[MessageRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE session_id = ? ORDER BY seq ASC",
            (session_id,),
        )
        return [self._row_to_message(row) for row in rows]

    async def get_first_exchange(self, session_id: str) -> list[MessageRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE session_id = ? ORDER BY seq ASC LIMIT 4",
            (session_id,),
        )
        return [self._row_to_message(row) for row in rows]

    async def append_message(self, session_id: str, message: NewMessage) -> MessageRecord:
        records = await self.append_messages(session_id, [message])
        return records[0]

    async def append_messages(
        self,
        session_id: str,
        messages: Iterable[NewMessage],
        *,
        selected_page_ids: Optional[list[str]] = None,
    ) -> list[MessageRecord]:
        """Insert messages in one transaction and touch the session.

        Either every message is stored or none is; a chat turn's user and
        assistant messages therefore never end up half-written.
        """
        pending = list(messages)
        now = _utc_now_str()
        prepared = [(uuid4().hex, message) for message in pending]

        async with self._write_lock:
            def _insert() -> int:
                with sqlite3.connect(self._db_path) as connection:
                    connection.row_factory = sqlite3.Row
                    _ensure_pragmas(connection)

                    cursor = connection.execute(
                        "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                        (session_id,),
                    )
                    row = cursor.fetchone()
                    first_seq = int(row["max_seq"] or 0) + 1

                    for offset, (message_id, message) in enumerate(prepared):
                        connection.execute(
                            f"INSERT INTO messages ({_MESSAGE_COLUMNS})"
                            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                            (
                                message_id,
                                session_id,
                                message.role,
                                message.content,
                                message.thinking,
                                json.dumps(message.sources, ensure_ascii=False),
                                message.message_type,
                                json.dumps(message.tool_calls) if message.tool_calls else None,
                                message.tool_call_id,
                                message.tool_name,
                                message.tool_status,
                                int(message.clarification),
                                first_seq + offset,
                                now,
                            ),
                        )
                    if selected_page_ids:
                        connection.execute(
                            "UPDATE sessions SET selected_page_ids = ?, updated_at = ? WHERE id = ?",
                            (json.dumps(list(selected_page_ids)), now, session_id),
                        )
                    else:
                        connection.execute(
                            "UPDATE sessions SET updated_at = ? WHERE id = ?",
                            (now, session_id),
                        )
                    connection.commit()
                    return first_seq

            try:
                first_seq = await asyncio.to_thread(_insert)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to store messages for session {session_id}: {exc}") from exc

        return [
            MessageRecord(
                id=message_id,
                session_id=session_id,
                role=message.role,
                content=message.content,
                thinking=message.thinking,
                sources=list(message.sources),
                message_type=message.message_type,
                tool_calls=message.tool_calls,
                tool_call_id=message.tool_call_id,
                tool_name=message.tool_name,
                tool_status=message.tool_status,
                clarification=message.clarification,
                seq=first_seq + offset,
                created_at=_parse_ts(now),
            )
            for offset, (message_id, message) in enumerate(prepared)
        ]

    async def truncate_from(self, session_id: str, message_id: str) -> Optional[int]:
        """Delete ``message_id`` and every later message of the session.

        Returns the number of deleted messages, or ``None`` when the message
        does not belong to the session.
        """
        async with self._write_lock:
            def _truncate() -> Optional[int]:
                with sqlite3.connect(self._db_path) as connection:
                    connection.row_factory = sqlite3.Row
                    _ensure_pragmas(connection)
                    row = connection.execute(
                        "SELECT seq FROM messages WHERE id = ? AND session_id = ?",
                        (message_id, session_id),
                    ).fetchone()
                    if row is None:
                        return None
                    cursor = connection.execute(
                        "DELETE FROM messages WHERE session_id = ? AND seq >= ?",
                        (session_id, row["seq"]),
                    )
                    connection.execute(
                        "UPDATE sessions SET updated_at = ? WHERE id = ?",
                        (_utc_now_str(), session_id),
                    )
                    connection.commit()
                    return cursor.rowcount

            return await asyncio.to_thread(_truncate)

    async def touch_session(self, session_id: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                (_utc_now_str(), session_id),
            )

    async def update_session_title(self, session_id: str, title: str) -> None:
        now = _utc_now_str()
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE sessions SET title = ?, updated_at = ? WHERE id = ?",
                (title, now, session_id),
            )

    async def rename_session(self, session_id: str, title: str) -> SessionRecord:
        await self.update_session_title(session_id, title)
        session = await self.get_session(session_id)
        if session is None:
            raise ValueError(f"Session {session_id} not found after rename")
        return session

    async def update_thread_id(self, session_id: str, thread_id: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE sessions SET thread_id = ?, updated_at = ? WHERE id = ?",
                (thread_id, _utc_now_str(), session_id),
            )

    async def update_selected_page_ids(self, session_id: str, page_ids: list[str]) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "UPDATE sessions SET selected_page_ids = ?, updated_at = ? WHERE id = ?",
                (json.dumps(list(page_ids)), _utc_now_str(), session_id),
            )

    async def delete_session(self, session_id: str) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "DELETE FROM sessions WHERE id = ?",
                (session_id,),
            )

    async def session_has_title(self, session_id: str) -> bool:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT title FROM sessions WHERE id = ?",
            (session_id,),
        )
        return bool(row and row["title"] and row["title"] != DEFAULT_SESSION_TITLE)

    def _execute(self, query: str, params: tuple = ()) -> None:
        with sqlite3.connect(self._db_path) as connection:
            _ensure_pragmas(connection)
            connection.execute(query, params)
            connection.commit()

    def _fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchall()

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchone()

    @staticmethod
    def _row_to_session(row: sqlite3.Row | None) -> Optional[SessionRecord]:
        if row is None:
            return None
        return SessionRecord(
            id=row["id"],
            workspace_id=row["workspace_id"],
            user_id=row["user_id"],
            page_id=row["page_id"],
            title=row["title"],
            thread_id=row["thread_id"],
            selected_page_ids=json.loads(row["selected_page_ids"]) if row["selected_page_ids"] else [],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"],
            thinking=row["thinking"],
            sources=json.loads(row["sources"]) if row["sources"] else [],
            message_type=row["message_type"],
            tool_calls=json.loads(row["tool_calls"]) if row["tool_calls"] else None,
            tool_call_id=row["tool_call_id"],
            tool_name=row["tool_name"],
            tool_status=row["tool_status"],
            clarification=bool(row["clarification"]),
            seq=row["seq"],
            created_at=_parse_ts(row["created_at"]),
        )


def _utc_now_str() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"


def _parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value)
