# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, List, Mapping, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from src.config.models import MODEL_ROUTES, ModelRoute, get_route
from src.errors import ChatError, ProviderError
from src.llms.llm import get_llm_by_model
from src.memory.service import MemoryService
from src.prompts.rag import build_rag_system_prompt
from src.rag.retriever import ContextRequest, Retriever
from src.server.chat_request import ChatMessage, ChatRequest
from src.server.session.dependencies import RequestContext
from src.server.session.models import NewMessage, SessionRecord
from src.server.session.store import SQLiteSessionStore
from src.streaming.codec import DONE_FRAME, encode_event
from src.streaming.events import (
    ChunkEvent,
    ErrorEvent,
    MemoryEvent,
    Source,
    SourcesEvent,
    ThinkingEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10

LLMFactory = Callable[..., BaseChatModel]
DisconnectCheck = Callable[[], Awaitable[bool]]


@dataclass(slots=True)
class _TurnAccumulator:
    """Everything one turn has produced so far."""

    sources: List[Source] = field(default_factory=list)
    content_chunks: List[str] = field(default_factory=list)
    thinking_chunks: List[str] = field(default_factory=list)

    @property
    def content(self) -> str:
        return "".join(self.content_chunks)

    @property
    def thinking(self) -> Optional[str]:
        return "".join(self.thinking_chunks) or None


class ChatOrchestrator:
    """Runs one retrieval-augmented chat turn as an SSE frame stream.

    Frame order is sources, memory, then chunk/thinking deltas. A turn that
    completes is persisted before the ``[DONE]`` frame; a cancelled turn
    stores nothing and sends no sentinel.
    """

    def __init__(
        self,
        store: SQLiteSessionStore,
        retriever: Retriever,
        llm_factory: LLMFactory = get_llm_by_model,
        *,
        memory: Optional[MemoryService] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        routes: Mapping[str, ModelRoute] = MODEL_ROUTES,
        ai_soul: Optional[str] = None,
        user_profile: Optional[str] = None,
    ) -> None:
        self._store = store
        self._retriever = retriever
        self._llm_factory = llm_factory
        self._memory = memory
        self._history_limit = max(1, history_limit)
        self._routes = routes
        self._ai_soul = ai_soul
        self._user_profile = user_profile

    def clamp_history(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        return list(messages[-self._history_limit :])

    async def stream_chat(
        self,
        request: ChatRequest,
        ctx: RequestContext,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[str]:
        history = self.clamp_history(request.messages)
        last_user = request.last_user_message
        query = last_user.content if last_user else ""
        turn = _TurnAccumulator()

        try:
            route = get_route(request.model, self._routes)
            emit_thinking = request.thinking and route.supports_thinking
            llm = self._llm_factory(route.model_id, thinking=emit_thinking)
            result = await self._retriever.resolve_context(
                ContextRequest(
                    query=query,
                    history=[message.model_dump() for message in history],
                    selected_page_ids=list(request.selected_page_ids),
                    web_search_enabled=request.is_web_search_enabled,
                ),
                ctx.workspace_id,
            )
        except ChatError as exc:
            logger.warning("Chat turn failed before streaming: %s", exc)
            yield encode_event(ErrorEvent(message=str(exc)))
            return
        except Exception as exc:
            logger.exception("Unexpected error preparing chat turn")
            yield encode_event(ErrorEvent(message=str(exc) or exc.__class__.__name__))
            return

        turn.sources = result.sources
        logger.info(
            "Chat turn using %s strategy with %d sources (model=%s)",
            result.strategy.value,
            len(turn.sources),
            route.model_id,
        )
        yield encode_event(SourcesEvent(sources=turn.sources))
        memories = await self._memory.recall(ctx.user_id, query) if self._memory is not None else []
        yield encode_event(MemoryEvent(enabled=self._memory is not None, loaded=bool(memories)))

        prompt = self._build_prompt(history, turn.sources, memories)
        stream = llm.astream(prompt)
        try:
            async for chunk in stream:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client disconnected, abandoning chat turn")
                    return
                reasoning = chunk.additional_kwargs.get("reasoning_content") if emit_thinking else None
                if reasoning:
                    turn.thinking_chunks.append(reasoning)
                    yield encode_event(ThinkingEvent(text=reasoning))
                text = _stringify_content(chunk.content)
                if text:
                    turn.content_chunks.append(text)
                    yield encode_event(ChunkEvent(text=text))
        except asyncio.CancelledError:
            logger.info("Chat turn cancelled after %d chunks", len(turn.content_chunks))
            raise
        except Exception as exc:
            error = exc if isinstance(exc, ChatError) else ProviderError(str(exc) or exc.__class__.__name__)
            logger.error("AI stream error: %s", error)
            yield encode_event(ErrorEvent(message=str(error)))
            return
        finally:
            await stream.aclose()

        persisted = await self._persist_turn(request, ctx, query, turn)
        yield DONE_FRAME

        if persisted and self._memory is not None:
            await self._memory.remember_turn(ctx.user_id, query, turn.content)

    def _build_prompt(
        self, history: List[ChatMessage], sources: List[Source], memories: Sequence[str] = ()
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = [
            SystemMessage(
                content=build_rag_system_prompt(sources, self._ai_soul, self._user_profile, memories)
            )
        ]
        for message in history:
            if message.role == "user":
                messages.append(HumanMessage(content=message.content))
            else:
                messages.append(AIMessage(content=message.content))
        return messages

    async def _persist_turn(
        self,
        request: ChatRequest,
        ctx: RequestContext,
        query: str,
        turn: _TurnAccumulator,
    ) -> bool:
        if not request.session_id:
            return False
        try:
            session = await self._store.get_session(request.session_id)
            if not _owns(session, ctx):
                logger.warning(
                    "Session %s not found or unauthorized for message persistence",
                    request.session_id,
                )
                return False

            pending: List[NewMessage] = []
            if not request.skip_user_persist:
                pending.append(NewMessage(role="user", content=query))
            pending.append(
                NewMessage(
                    role="assistant",
                    content=turn.content,
                    thinking=turn.thinking,
                    sources=[source.to_wire() for source in turn.sources],
                )
            )
            await self._store.append_messages(
                request.session_id,
                pending,
                selected_page_ids=list(request.selected_page_ids) or None,
            )
        except Exception:
            logger.exception("Failed to persist chat messages for session %s", request.session_id)
            return False
        return True


def _owns(session: Optional[SessionRecord], ctx: RequestContext) -> bool:
    return session is not None and session.is_owned_by(ctx.workspace_id, ctx.user_id)


def _stringify_content(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    return str(content)
