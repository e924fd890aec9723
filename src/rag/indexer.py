# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Keeps the semantic index in step with page content.

Each page is split into overlapping chunks stored under deterministic ids
(``<page_id>:<chunk_index>``), so re-indexing a page replaces its chunks
instead of accumulating them.
"""

import asyncio
import logging
from typing import Optional

from langchain_core.documents import Document
from langchain_core.vectorstores import InMemoryVectorStore, VectorStore
from langchain_text_splitters import RecursiveCharacterTextSplitter

from src.errors import RetrievalError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 512
DEFAULT_CHUNK_OVERLAP = 64


def chunk_ids(page_id: str, count: int) -> list[str]:
    return [f"{page_id}:{index}" for index in range(count)]


class PageIndexer:
    def __init__(
        self,
        vector_store: VectorStore,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        persist_path: Optional[str] = None,
    ) -> None:
        self.vector_store = vector_store
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=min(chunk_overlap, chunk_size - 1),
        )
        self._persist_path = persist_path
        self._lock = asyncio.Lock()

    def split(self, text: str) -> list[str]:
        if not text or text == "null":
            return []
        return [chunk for chunk in self._splitter.split_text(text) if chunk.strip()]

    async def index_page(
        self,
        *,
        page_id: str,
        workspace_id: str,
        title: str,
        text_content: str,
        slug_id: str = "",
        space_slug: str = "",
        previous_chunks: int = 0,
    ) -> int:
        """Replace the page's chunks and return how many were written."""
        chunks = self.split(text_content)
        documents = [
            Document(
                page_content=chunk,
                metadata={
                    "page_id": page_id,
                    "workspace_id": workspace_id,
                    "title": title,
                    "slug_id": slug_id,
                    "space_slug": space_slug,
                    "chunk_index": index,
                },
            )
            for index, chunk in enumerate(chunks)
        ]
        async with self._lock:
            try:
                if previous_chunks:
                    await self.vector_store.adelete(chunk_ids(page_id, previous_chunks))
                if documents:
                    await self.vector_store.aadd_documents(documents, ids=chunk_ids(page_id, len(documents)))
            except Exception as exc:  # noqa: BLE001
                raise RetrievalError(f"Failed to index page {page_id}: {exc}") from exc
            await self._persist()
        logger.debug("Indexed page %s: %d chunks", page_id, len(documents))
        return len(documents)

    async def remove_page(self, page_id: str, chunk_count: int) -> None:
        if not chunk_count:
            return
        async with self._lock:
            try:
                await self.vector_store.adelete(chunk_ids(page_id, chunk_count))
            except Exception as exc:  # noqa: BLE001
                raise RetrievalError(f"Failed to remove page {page_id} from the index: {exc}") from exc
            await self._persist()
        logger.debug("Removed %d chunks of page %s", chunk_count, page_id)

    async def _persist(self) -> None:
        if self._persist_path and isinstance(self.vector_store, InMemoryVectorStore):
            await asyncio.to_thread(self.vector_store.dump, self._persist_path)
