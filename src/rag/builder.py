# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
import os
from typing import Optional

from langchain_core.vectorstores import InMemoryVectorStore, VectorStore
from langchain_openai import OpenAIEmbeddings

from src.config.loader import get_bool_env, get_int_env, get_str_env
from src.llms.llm import get_utility_llm

from .indexer import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, PageIndexer
from .pages import SQLitePageRepository
from .retriever import DEFAULT_TOP_K, Retriever
from .web_search import WebSearchService

logger = logging.getLogger(__name__)


def build_vector_store() -> Optional[VectorStore]:
    """In-memory similarity index over OpenAI-compatible embeddings, if configured.

    When VECTOR_STORE_PATH names an existing dump, the index is reloaded from it.
    """
    api_key = get_str_env("EMBEDDING_API_KEY")
    if not api_key:
        logger.info("EMBEDDING_API_KEY not set, semantic search disabled")
        return None
    embeddings = OpenAIEmbeddings(
        model=get_str_env("EMBEDDING_MODEL", "text-embedding-3-small"),
        base_url=get_str_env("EMBEDDING_API_URL") or None,
        api_key=api_key,
    )
    persist_path = get_str_env("VECTOR_STORE_PATH")
    if persist_path and os.path.exists(persist_path):
        logger.info("Loading vector store from %s", persist_path)
        return InMemoryVectorStore.load(persist_path, embedding=embeddings)
    return InMemoryVectorStore(embedding=embeddings)


def build_page_indexer(vector_store: Optional[VectorStore]) -> Optional[PageIndexer]:
    if vector_store is None:
        return None
    return PageIndexer(
        vector_store,
        chunk_size=get_int_env("EMBEDDING_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        chunk_overlap=get_int_env("EMBEDDING_CHUNK_OVERLAP", DEFAULT_CHUNK_OVERLAP),
        persist_path=get_str_env("VECTOR_STORE_PATH") or None,
    )


def build_web_search() -> Optional[WebSearchService]:
    proxy_url = get_str_env("SERPER_PROXY")
    if not proxy_url:
        return None
    return WebSearchService(
        llm_factory=get_utility_llm,
        proxy_url=proxy_url,
        token=get_str_env("SERPER_PROXY_TOKEN"),
    )


def build_retriever(
    pages: SQLitePageRepository,
    vector_store: Optional[VectorStore] = None,
) -> Retriever:
    if vector_store is None and pages.indexer is not None:
        vector_store = pages.indexer.vector_store
    return Retriever(
        pages,
        vector_store=vector_store,
        web_search=build_web_search(),
        semantic_enabled=get_bool_env("SEMANTIC_SEARCH_ENABLED", True),
        top_k=get_int_env("RETRIEVAL_TOP_K", DEFAULT_TOP_K),
    )
