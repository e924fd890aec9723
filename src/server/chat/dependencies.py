# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from typing import Optional

from fastapi import Depends

from src.config.loader import get_int_env, get_str_env
from src.memory.service import MemoryService, build_memory_service
from src.rag.builder import build_page_indexer, build_retriever, build_vector_store
from src.rag.pages import SQLitePageRepository
from src.server.session.dependencies import get_session_store
from src.server.session.store import SQLiteSessionStore

from .orchestrator import DEFAULT_HISTORY_LIMIT, ChatOrchestrator

logger = logging.getLogger(__name__)

_PAGE_REPOSITORY: Optional[SQLitePageRepository] = None
_ORCHESTRATOR: Optional[ChatOrchestrator] = None
_MEMORY_SERVICE: Optional[MemoryService] = None
_MEMORY_INITIALISED = False


def initialise_page_repository() -> SQLitePageRepository:
    global _PAGE_REPOSITORY
    if _PAGE_REPOSITORY is None:
        _PAGE_REPOSITORY = SQLitePageRepository(
            get_str_env("PAGES_DB_PATH", "workspace_pages.db"),
            indexer=build_page_indexer(build_vector_store()),
        )
        logger.info("Initialised page repository with DB path %s", _PAGE_REPOSITORY.db_path)
    return _PAGE_REPOSITORY


def get_page_repository() -> SQLitePageRepository:
    return initialise_page_repository()


def set_page_repository(repository: Optional[SQLitePageRepository]) -> None:
    global _PAGE_REPOSITORY
    _PAGE_REPOSITORY = repository


def initialise_memory_service() -> Optional[MemoryService]:
    global _MEMORY_SERVICE, _MEMORY_INITIALISED
    if not _MEMORY_INITIALISED:
        _MEMORY_SERVICE = build_memory_service()
        _MEMORY_INITIALISED = True
    return _MEMORY_SERVICE


def set_memory_service(service: Optional[MemoryService]) -> None:
    global _MEMORY_SERVICE, _MEMORY_INITIALISED
    _MEMORY_SERVICE = service
    _MEMORY_INITIALISED = service is not None


def get_memory_service() -> Optional[MemoryService]:
    return initialise_memory_service()


def build_chat_orchestrator(
    store: SQLiteSessionStore, pages: SQLitePageRepository
) -> ChatOrchestrator:
    return ChatOrchestrator(
        store,
        build_retriever(pages),
        memory=initialise_memory_service(),
        history_limit=get_int_env("CHAT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
        ai_soul=get_str_env("AI_SOUL") or None,
        user_profile=get_str_env("AI_USER_PROFILE") or None,
    )


def set_chat_orchestrator(orchestrator: Optional[ChatOrchestrator]) -> None:
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator


def get_chat_orchestrator(
    store: SQLiteSessionStore = Depends(get_session_store),
) -> ChatOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_chat_orchestrator(store, initialise_page_repository())
    return _ORCHESTRATOR
