# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import httpx

from src.errors import CancellationSignal, TransportError
from src.streaming.codec import SSEParser, StreamDone
from src.streaming.events import (
    ChunkEvent,
    ErrorEvent,
    MemoryEvent,
    Source,
    SourcesEvent,
    StreamEvent,
    ThinkingEvent,
)

from .models import ChatMessage

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/chat/stream"
SESSIONS_PATH = "/api/sessions"


@dataclass(slots=True)
class ChatTurnState:
    """What the client has received for the turn in flight."""

    sources: list[Source] = field(default_factory=list)
    content_chunks: list[str] = field(default_factory=list)
    thinking_chunks: list[str] = field(default_factory=list)
    memory: Optional[MemoryEvent] = None
    error: Optional[str] = None
    done: bool = False

    @property
    def content(self) -> str:
        return "".join(self.content_chunks)

    @property
    def thinking(self) -> str:
        return "".join(self.thinking_chunks)

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, SourcesEvent):
            self.sources = list(event.sources)
        elif isinstance(event, ChunkEvent):
            self.content_chunks.append(event.text)
        elif isinstance(event, ThinkingEvent):
            self.thinking_chunks.append(event.text)
        elif isinstance(event, MemoryEvent):
            self.memory = event
        elif isinstance(event, ErrorEvent):
            self.error = event.message


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TurnResult:
    status: TurnStatus
    state: ChatTurnState

    @property
    def error(self) -> Optional[str]:
        return self.state.error


EventCallback = Callable[[ChatTurnState, StreamEvent], None]


class ChatApiClient:
    """HTTP client for the chat stream and the session endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        workspace_id: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers: dict[str, str] = {}
        if workspace_id:
            headers["X-Workspace-Id"] = workspace_id
        if user_id:
            headers["X-User-Id"] = user_id
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def stream_turn(
        self,
        payload: dict[str, Any],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: Optional[EventCallback] = None,
    ) -> TurnResult:
        """Consume one chat stream into a fresh ``ChatTurnState``.

        Cancellation is checked between reads and between frames; a cancelled
        turn reports CANCELLED, never an error.
        """
        state = ChatTurnState()
        try:
            await self._consume(payload, state, cancel_event, on_event)
        except CancellationSignal:
            logger.info("Chat turn cancelled by user")
            return TurnResult(TurnStatus.CANCELLED, state)
        except TransportError as exc:
            logger.error("Chat stream failed: %s", exc)
            state.error = str(exc)
            return TurnResult(TurnStatus.ERROR, state)

        if state.error is not None:
            return TurnResult(TurnStatus.ERROR, state)
        if not state.done:
            state.error = "Stream ended before completion"
            return TurnResult(TurnStatus.ERROR, state)
        return TurnResult(TurnStatus.COMPLETED, state)

    async def _consume(
        self,
        payload: dict[str, Any],
        state: ChatTurnState,
        cancel_event: Optional[asyncio.Event],
        on_event: Optional[EventCallback],
    ) -> None:
        def _check_cancelled() -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise CancellationSignal()

        parser = SSEParser()
        try:
            async with self._client.stream("POST", STREAM_PATH, json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransportError(_error_detail(response))
                async for text in response.aiter_text():
                    _check_cancelled()
                    for frame in parser.feed(text):
                        self._handle_frame(frame, state, on_event)
                        _check_cancelled()
                for frame in parser.flush():
                    self._handle_frame(frame, state, on_event)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    def _handle_frame(frame: Any, state: ChatTurnState, on_event: Optional[EventCallback]) -> None:
        if isinstance(frame, StreamDone):
            state.done = True
            return
        state.apply(frame)
        if on_event is not None:
            on_event(state, frame)

    async def create_session(self, page_id: Optional[str] = None) -> dict[str, Any]:
        response = await self._request("POST", SESSIONS_PATH, json={"pageId": page_id})
        return response.json()["session"]

    async def list_sessions(self) -> list[dict[str, Any]]:
        response = await self._request("GET", SESSIONS_PATH)
        return response.json()["sessions"]

    async def get_session(self, session_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"{SESSIONS_PATH}/{session_id}")
        return response.json()

    async def get_messages(self, session_id: str) -> list[ChatMessage]:
        detail = await self.get_session(session_id)
        return [ChatMessage.model_validate(item) for item in detail.get("messages", [])]

    async def truncate_from(self, session_id: str, message_id: str) -> int:
        response = await self._request(
            "DELETE", f"{SESSIONS_PATH}/{session_id}/messages/{message_id}/truncate"
        )
        return int(response.json()["deleted"])

    async def auto_title(self, session_id: str) -> dict[str, Any]:
        response = await self._request("POST", f"{SESSIONS_PATH}/{session_id}/auto-title")
        return response.json()

    async def bind_thread(self, session_id: str, thread_id: str) -> dict[str, Any]:
        response = await self._request(
            "PUT", f"{SESSIONS_PATH}/{session_id}/thread", json={"threadId": thread_id}
        )
        return response.json()

    async def clarify_objective(self, message: str, model: Optional[str] = None) -> str:
        response = await self._request(
            "POST", "/api/clarify-objective", json={"message": message, "model": model}
        )
        return response.json()["objective"]

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        if response.status_code >= 400:
            raise TransportError(_error_detail(response))
        return response


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    detail = data.get("detail") if isinstance(data, dict) else None
    return f"HTTP {response.status_code}: {detail or response.text}"
