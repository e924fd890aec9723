# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Workspace pages as seen by retrieval.

Page CRUD belongs to the editor service, which pushes page content here.
Writes go through ``upsert_page`` so the semantic index follows the text.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from src.errors import RetrievalError, ValidationError

if TYPE_CHECKING:
    from .indexer import PageIndexer

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20

_PAGES_DDL = """
CREATE TABLE IF NOT EXISTS pages (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    space_slug TEXT NOT NULL DEFAULT '',
    slug_id TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    text_content TEXT,
    deleted_at TEXT,
    chunk_count INTEGER NOT NULL DEFAULT 0
);
"""

_PAGE_COLUMNS = "id, workspace_id, space_slug, slug_id, title, text_content"


@dataclass(slots=True)
class PageRecord:
    id: str
    workspace_id: str
    space_slug: str
    slug_id: str
    title: str
    text_content: str


class SQLitePageRepository:
    def __init__(self, db_path: str, indexer: Optional[PageIndexer] = None) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        self._db_path = str(path)
        self.indexer = indexer

    @property
    def db_path(self) -> str:
        return self._db_path

    async def init(self) -> None:
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with sqlite3.connect(self._db_path) as connection:
                connection.execute(_PAGES_DDL)
                columns = {row[1] for row in connection.execute("PRAGMA table_info(pages)")}
                if "chunk_count" not in columns:
                    connection.execute("ALTER TABLE pages ADD COLUMN chunk_count INTEGER NOT NULL DEFAULT 0")
                connection.commit()

        await asyncio.to_thread(_init)
        logger.info("Page database initialised at %s", self._db_path)

    async def upsert_page(
        self,
        *,
        page_id: str,
        workspace_id: str,
        title: str,
        text_content: str,
        slug_id: str = "",
        space_slug: str = "",
        deleted: bool = False,
    ) -> None:
        """Store the page, then re-index it. Index failures are logged, not raised.

        Raises ValidationError when the id is taken by another workspace.
        """

        def _upsert() -> int:
            with sqlite3.connect(self._db_path) as connection:
                row = connection.execute(
                    "SELECT chunk_count, workspace_id FROM pages WHERE id = ?", (page_id,)
                ).fetchone()
                if row is not None and row[1] != workspace_id:
                    raise ValidationError(f"Page {page_id} belongs to another workspace")
                connection.execute(
                    "INSERT INTO pages (id, workspace_id, space_slug, slug_id, title, text_content, deleted_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)"
                    " ON CONFLICT(id) DO UPDATE SET workspace_id = excluded.workspace_id,"
                    " space_slug = excluded.space_slug, slug_id = excluded.slug_id,"
                    " title = excluded.title, text_content = excluded.text_content,"
                    " deleted_at = excluded.deleted_at",
                    (
                        page_id,
                        workspace_id,
                        space_slug,
                        slug_id,
                        title,
                        text_content,
                        "deleted" if deleted else None,
                    ),
                )
                connection.commit()
                return row[0] if row else 0

        previous_chunks = await asyncio.to_thread(_upsert)
        if self.indexer is None:
            return

        try:
            if deleted:
                await self.indexer.remove_page(page_id, previous_chunks)
                chunk_count = 0
            else:
                chunk_count = await self.indexer.index_page(
                    page_id=page_id,
                    workspace_id=workspace_id,
                    title=title,
                    text_content=text_content,
                    slug_id=slug_id,
                    space_slug=space_slug,
                    previous_chunks=previous_chunks,
                )
        except RetrievalError as exc:
            logger.error("Page %s stored but not indexed: %s", page_id, exc)
            return
        await self._set_chunk_count(page_id, chunk_count)

    async def delete_page(self, page_id: str, workspace_id: str) -> bool:
        """Soft-delete a live page of the workspace and drop its chunks."""

        def _delete() -> Optional[int]:
            with sqlite3.connect(self._db_path) as connection:
                row = connection.execute(
                    "SELECT chunk_count FROM pages WHERE id = ? AND workspace_id = ? AND deleted_at IS NULL",
                    (page_id, workspace_id),
                ).fetchone()
                if row is None:
                    return None
                connection.execute("UPDATE pages SET deleted_at = 'deleted' WHERE id = ?", (page_id,))
                connection.commit()
                return row[0]

        chunk_count = await asyncio.to_thread(_delete)
        if chunk_count is None:
            return False
        if self.indexer is not None:
            try:
                await self.indexer.remove_page(page_id, chunk_count)
            except RetrievalError as exc:
                logger.error("Page %s deleted but still indexed: %s", page_id, exc)
                return True
            await self._set_chunk_count(page_id, 0)
        return True

    async def get_pages(self, page_ids: Sequence[str], workspace_id: str) -> dict[str, PageRecord]:
        """Live pages of the workspace among ``page_ids``, keyed by id."""
        if not page_ids:
            return {}
        placeholders = ", ".join("?" for _ in page_ids)
        rows = await self._select(
            f"WHERE id IN ({placeholders}) AND workspace_id = ? AND deleted_at IS NULL",
            (*page_ids, workspace_id),
        )
        return {row["id"]: _row_to_page(row) for row in rows}

    async def search_pages(
        self,
        workspace_id: str,
        *,
        query: str = "",
        space_slug: Optional[str] = None,
        page_ids: Optional[Sequence[str]] = None,
        limit: int = SEARCH_LIMIT,
    ) -> list[PageRecord]:
        """Pages for the chat page picker.

        Explicit ids win and keep the caller's order; otherwise titles within
        the space are matched case-insensitively. Without a space or ids the
        result is empty.
        """
        if page_ids:
            pages = await self.get_pages(page_ids, workspace_id)
            return [pages[page_id] for page_id in dict.fromkeys(page_ids) if page_id in pages]
        if not space_slug:
            return []

        pattern = "%" + query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        rows = await self._select(
            "WHERE workspace_id = ? AND space_slug = ? AND deleted_at IS NULL"
            " AND title LIKE ? ESCAPE '\\' ORDER BY title COLLATE NOCASE, id LIMIT ?",
            (workspace_id, space_slug, pattern, limit),
        )
        return [_row_to_page(row) for row in rows]

    async def _select(self, clause: str, params: Sequence) -> list[sqlite3.Row]:
        def _fetch() -> list[sqlite3.Row]:
            with sqlite3.connect(self._db_path) as connection:
                connection.row_factory = sqlite3.Row
                cursor = connection.execute(f"SELECT {_PAGE_COLUMNS} FROM pages {clause}", tuple(params))
                return cursor.fetchall()

        return await asyncio.to_thread(_fetch)

    async def _set_chunk_count(self, page_id: str, chunk_count: int) -> None:
        def _update() -> None:
            with sqlite3.connect(self._db_path) as connection:
                connection.execute("UPDATE pages SET chunk_count = ? WHERE id = ?", (chunk_count, page_id))
                connection.commit()

        await asyncio.to_thread(_update)


def _row_to_page(row: sqlite3.Row) -> PageRecord:
    text = row["text_content"]
    return PageRecord(
        id=row["id"],
        workspace_id=row["workspace_id"],
        space_slug=row["space_slug"] or "",
        slug_id=row["slug_id"] or "",
        title=row["title"] or "",
        text_content=text if text and text != "null" else "",
    )
