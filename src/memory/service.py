# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Long-term user memory backed by mem0.

Memories are extracted from completed turns and recalled per user. The
backend is optional: every failure is logged and reads degrade to nothing.
"""

import logging
from typing import Any, Optional, Protocol

from mem0 import AsyncMemory
from mem0.configs.base import MemoryConfig

from src.config.loader import get_bool_env, get_int_env, get_str_env

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5


class MemoryBackend(Protocol):
    async def add(self, messages: list[dict[str, str]], **kwargs: Any) -> Any: ...

    async def get_all(self, **kwargs: Any) -> Any: ...

    async def search(self, query: str, **kwargs: Any) -> Any: ...


class MemoryService:
    def __init__(self, backend: MemoryBackend, *, search_limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        self._backend = backend
        self._search_limit = search_limit

    async def recall(self, user_id: str, query: Optional[str] = None) -> list[str]:
        """Memories relevant to ``query``, or all of them when no query is given."""
        try:
            if query and query.strip():
                result = await self._backend.search(query, user_id=user_id, limit=self._search_limit)
            else:
                result = await self._backend.get_all(user_id=user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to load memories for user %s: %s", user_id, exc)
            return []
        return _memory_texts(result)

    async def remember_turn(self, user_id: str, question: str, answer: str) -> bool:
        if not question or not answer:
            return False
        try:
            await self._backend.add(
                [{"role": "user", "content": question}, {"role": "assistant", "content": answer}],
                user_id=user_id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to save memory for user %s: %s", user_id, exc)
            return False
        return True


def _memory_texts(result: Any) -> list[str]:
    items = result.get("results", []) if isinstance(result, dict) else result or []
    texts = []
    for item in items:
        text = item.get("memory") if isinstance(item, dict) else None
        if text:
            texts.append(str(text))
    return texts


def build_memory_service() -> Optional[MemoryService]:
    if not get_bool_env("MEMORY_ENABLED", False):
        logger.info("Memory disabled. Set MEMORY_ENABLED=true to enable.")
        return None

    api_key = get_str_env("MEM0_API_KEY") or get_str_env("OPENAI_API_KEY")
    base_url = get_str_env("MEM0_API_URL") or get_str_env("OPENAI_API_URL", "https://open.bigmodel.cn/api/paas/v4")
    dims = get_int_env("MEM0_EMBEDDING_DIMS", 1024)
    vector_path = get_str_env("MEM0_VECTOR_PATH", "mem0_qdrant")
    config = MemoryConfig(
        llm={
            "provider": "openai",
            "config": {
                "model": get_str_env("MEM0_LLM_MODEL", "glm-4-flash-250414"),
                "api_key": api_key,
                "openai_base_url": base_url,
            },
        },
        embedder={
            "provider": "openai",
            "config": {
                "model": get_str_env("MEM0_EMBEDDING_MODEL", "embedding-2"),
                "api_key": api_key,
                "openai_base_url": base_url,
                "embedding_dims": dims,
            },
        },
        vector_store={
            "provider": "qdrant",
            "config": {
                "collection_name": "memories",
                "path": vector_path,
                "embedding_model_dims": dims,
                "on_disk": True,
            },
        },
        history_db_path=get_str_env("MEM0_HISTORY_DB_PATH", "mem0_history.db"),
    )
    try:
        backend = AsyncMemory(config=config)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to initialise mem0, memory disabled: %s", exc)
        return None
    logger.info("Memory initialised (vector path %s)", vector_path)
    return MemoryService(backend, search_limit=get_int_env("MEM0_SEARCH_LIMIT", DEFAULT_SEARCH_LIMIT))
