# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from langchain_core.documents import Document
from langchain_core.vectorstores import VectorStore

from src.errors import RetrievalError
from src.streaming.events import Source

from .pages import SQLitePageRepository
from .web_search import NO_SEARCH, WebSearchService, results_to_sources

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class RetrievalStrategy(str, Enum):
    SELECTED_PAGES = "selected_pages"
    WEB_SEARCH = "web_search"
    SEMANTIC = "semantic"
    NONE = "none"


@dataclass(slots=True)
class ContextRequest:
    """What one chat turn asks the retriever for."""

    query: str
    history: list[dict[str, Any]] = field(default_factory=list)
    selected_page_ids: list[str] = field(default_factory=list)
    web_search_enabled: bool = False


@dataclass(slots=True)
class RetrievalResult:
    strategy: RetrievalStrategy
    sources: list[Source]


def workspace_filter(workspace_id: str) -> Callable[[Document], bool]:
    """Document filter for vector stores that accept predicates."""
    return lambda doc: doc.metadata.get("workspace_id") == workspace_id


class Retriever:
    """Resolves the context sources for a chat turn.

    Exactly one strategy runs per turn, picked in this order: pinned pages,
    web search, semantic search. Pinned-page lookup failures are fatal to
    the turn; the other strategies degrade to an empty result.
    """

    def __init__(
        self,
        pages: SQLitePageRepository,
        vector_store: Optional[VectorStore] = None,
        web_search: Optional[WebSearchService] = None,
        *,
        semantic_enabled: bool = True,
        top_k: int = DEFAULT_TOP_K,
        scope_filter: Callable[[str], Any] = workspace_filter,
    ) -> None:
        self._pages = pages
        self._vector_store = vector_store
        self._web_search = web_search
        self._semantic_enabled = semantic_enabled
        self._top_k = top_k
        self._scope_filter = scope_filter

    def select_strategy(self, request: ContextRequest) -> RetrievalStrategy:
        if request.selected_page_ids:
            return RetrievalStrategy.SELECTED_PAGES
        if request.web_search_enabled and self._web_search is not None:
            return RetrievalStrategy.WEB_SEARCH
        if self._semantic_enabled and self._vector_store is not None and request.query.strip():
            return RetrievalStrategy.SEMANTIC
        return RetrievalStrategy.NONE

    async def resolve_context(self, request: ContextRequest, scope: str) -> RetrievalResult:
        strategy = self.select_strategy(request)
        logger.debug("Resolving context with strategy %s", strategy.value)
        if strategy is RetrievalStrategy.SELECTED_PAGES:
            sources = await self.retrieve_selected_pages(request.selected_page_ids, scope)
        elif strategy is RetrievalStrategy.WEB_SEARCH:
            sources = await self._search_web(request)
        elif strategy is RetrievalStrategy.SEMANTIC:
            sources = await self.retrieve(request.query, scope)
        else:
            sources = []
        return RetrievalResult(strategy=strategy, sources=sources)

    async def retrieve(self, query: str, scope: str, top_k: Optional[int] = None) -> list[Source]:
        """Top-k excerpts by similarity, highest first. Failures yield []."""
        if self._vector_store is None:
            return []
        k = top_k or self._top_k
        try:
            hits = await self._vector_store.asimilarity_search_with_score(
                query, k=k, filter=self._scope_filter(scope)
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Semantic retrieval failed for workspace %s: %s", scope, exc)
            return []

        sources = [
            _document_to_source(doc, score)
            for doc, score in hits
            if doc.metadata.get("workspace_id", scope) == scope
        ]
        sources.sort(key=lambda source: source.similarity, reverse=True)
        return sources[:k]

    async def retrieve_selected_pages(self, page_ids: Sequence[str], scope: str) -> list[Source]:
        """Full-page pseudo-chunks in caller order with maximal similarity."""
        if not page_ids:
            return []
        try:
            pages = await self._pages.get_pages(list(page_ids), scope)
        except Exception as exc:
            raise RetrievalError(f"Failed to load selected pages: {exc}") from exc

        missing = [page_id for page_id in page_ids if page_id not in pages]
        if missing:
            logger.warning("Selected pages not found in workspace %s: %s", scope, missing)

        sources: list[Source] = []
        for page_id in page_ids:
            page = pages.get(page_id)
            if page is None:
                continue
            sources.append(
                Source(
                    page_id=page.id,
                    title=page.title,
                    slug_id=page.slug_id,
                    space_slug=page.space_slug,
                    excerpt=page.text_content,
                    similarity=1.0,
                    chunk_index=len(sources),
                )
            )
        return sources

    async def _search_web(self, request: ContextRequest) -> list[Source]:
        if self._web_search is None:
            return []
        history = request.history or [{"role": "user", "content": request.query}]
        query = await self._web_search.rewrite_query(history)
        if not query or query == NO_SEARCH:
            logger.info("Query rewrite returned NO_SEARCH, skipping web search")
            return []
        response = await self._web_search.search(query)
        if response.error:
            logger.warning("Web search failed: %s", response.error)
            return []
        return results_to_sources(response.results)


def _document_to_source(doc: Document, score: float) -> Source:
    metadata = doc.metadata
    return Source(
        page_id=str(metadata.get("page_id", "")),
        title=metadata.get("title", ""),
        slug_id=metadata.get("slug_id", ""),
        space_slug=metadata.get("space_slug", ""),
        excerpt=metadata.get("excerpt") or doc.page_content,
        similarity=float(score),
        chunk_index=int(metadata.get("chunk_index", 0)),
    )
