# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import httpx
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from src.prompts.rag import build_query_rewrite_prompt
from src.streaming.events import Source

logger = logging.getLogger(__name__)

NO_SEARCH = "NO_SEARCH"
MAX_RESULTS = 10
MAX_QUERY_CHARS = 2000


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    content: str


@dataclass(slots=True)
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    error: Optional[str] = None


class WebSearchService:
    """Query rewriting plus a Serper-compatible search proxy."""

    def __init__(
        self,
        llm_factory: Callable[[], BaseChatModel],
        proxy_url: str,
        token: str = "",
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._llm_factory = llm_factory
        self._proxy_url = proxy_url
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def rewrite_query(self, messages: Sequence[dict]) -> str:
        """Keyword query for the latest turn, or NO_SEARCH."""
        prompt = build_query_rewrite_prompt(messages)
        try:
            llm = self._llm_factory()
            response = await asyncio.wait_for(
                llm.ainvoke([HumanMessage(content=prompt)]), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Query rewrite timed out after %.1fs, skipping web search", self._timeout)
            return NO_SEARCH
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to rewrite query: %s", exc)
            return NO_SEARCH

        content = response.content if isinstance(response.content, str) else ""
        rewritten = content.strip().strip('"').strip()
        logger.debug("Query rewritten to %r", rewritten)
        return rewritten or NO_SEARCH

    async def search(self, query: str) -> SearchResponse:
        if not self._proxy_url:
            error = "SERPER_PROXY is not configured"
            logger.warning(error)
            return SearchResponse(error=error)

        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        body = {"query": query[:MAX_QUERY_CHARS], "categories": ["SEARCH"]}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._proxy_url, json=body, headers=headers)
        except httpx.TimeoutException:
            logger.warning("Search proxy timed out after %.1fs", self._timeout)
            return SearchResponse(error="Timeout")
        except httpx.HTTPError as exc:
            logger.error("Search error: %s", exc)
            return SearchResponse(error=str(exc) or exc.__class__.__name__)

        if response.status_code >= 400:
            error = f"Search API error: {response.status_code} {response.text}"
            logger.error(error)
            return SearchResponse(error=error)

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Search proxy returned invalid JSON: %s", exc)
            return SearchResponse(error="Invalid search response")

        organic = data.get("organic") if isinstance(data, dict) else None
        if not organic:
            logger.debug("No organic results for %r", query)
            return SearchResponse()

        results = [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("link", ""),
                content=item.get("snippet") or "",
            )
            for item in organic[:MAX_RESULTS]
        ]
        logger.info("Web search returned %d results", len(results))
        return SearchResponse(results=results)


def results_to_sources(results: Sequence[SearchResult]) -> list[Source]:
    return [
        Source(
            page_id="web",
            title=result.title,
            url=result.url,
            excerpt=result.content,
            similarity=1.0,
            chunk_index=index,
        )
        for index, result in enumerate(results)
    ]
