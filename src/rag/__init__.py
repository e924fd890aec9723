# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from .builder import build_page_indexer, build_retriever, build_vector_store
from .indexer import PageIndexer
from .pages import PageRecord, SQLitePageRepository
from .retriever import ContextRequest, RetrievalResult, RetrievalStrategy, Retriever
from .web_search import NO_SEARCH, SearchResponse, SearchResult, WebSearchService

__all__ = [
    "NO_SEARCH",
    "ContextRequest",
    "PageIndexer",
    "PageRecord",
    "RetrievalResult",
    "RetrievalStrategy",
    "Retriever",
    "SQLitePageRepository",
    "SearchResponse",
    "SearchResult",
    "WebSearchService",
    "build_page_indexer",
    "build_retriever",
    "build_vector_store",
]
