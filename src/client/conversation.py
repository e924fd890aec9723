# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import logging
from typing import Any, Optional

from src.errors import ChatError, ValidationError
from src.streaming.events import StreamEvent

from .chat_client import ChatApiClient, ChatTurnState, TurnResult, TurnStatus
from .models import ChatMessage, is_local_id

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


class ConversationController:
    """Client-side transcript for one chat session.

    Sending is optimistic: the user message appears immediately and a
    streaming assistant placeholder is filled as chunks arrive. A stopped
    turn removes both again so the transcript looks as it did before.
    """

    def __init__(
        self,
        api: ChatApiClient,
        *,
        model: Optional[str] = None,
        thinking: bool = False,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        page_id: Optional[str] = None,
    ) -> None:
        self._api = api
        self.model = model
        self.thinking = thinking
        self.history_limit = history_limit
        self.page_id = page_id
        self.session_id: Optional[str] = None
        self.messages: list[ChatMessage] = []
        self.selected_page_ids: list[str] = []
        self.web_search_enabled = False
        self.last_error: Optional[str] = None
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def is_streaming(self) -> bool:
        return self._cancel_event is not None

    async def ensure_session(self) -> str:
        if self.session_id and not is_local_id(self.session_id):
            return self.session_id
        session = await self._api.create_session(self.page_id)
        self.session_id = session["id"]
        logger.info("Created chat session %s", self.session_id)
        return self.session_id

    async def load_history(self, session_id: str) -> list[ChatMessage]:
        self.messages = await self._api.get_messages(session_id)
        self.session_id = session_id
        return self.messages

    def stop(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def send_message(self, content: str, *, skip_user_persist: bool = False) -> TurnResult:
        content = content.strip()
        if not content:
            raise ValidationError("Message must not be empty")
        if self.is_streaming:
            raise ValidationError("A response is already streaming")

        session_id = await self.ensure_session()
        user_message: Optional[ChatMessage] = None
        if not skip_user_persist:
            user_message = ChatMessage(role="user", content=content, session_id=session_id)
            self.messages.append(user_message)
        history = [message.to_history() for message in self.messages][-self.history_limit :]

        placeholder = ChatMessage(role="assistant", session_id=session_id)
        self.messages.append(placeholder)
        self.last_error = None
        self._cancel_event = asyncio.Event()

        def _on_event(state: ChatTurnState, _: StreamEvent) -> None:
            placeholder.content = state.content
            placeholder.thinking = state.thinking or None
            placeholder.sources = list(state.sources)

        try:
            result = await self._api.stream_turn(
                self._build_payload(session_id, history, skip_user_persist),
                cancel_event=self._cancel_event,
                on_event=_on_event,
            )
        finally:
            self._cancel_event = None

        if result.status is TurnStatus.CANCELLED:
            self._discard(placeholder, user_message)
        elif result.status is TurnStatus.ERROR:
            self.last_error = result.error
            if not placeholder.content:
                self._discard(placeholder)
        else:
            await self._after_completion(session_id)
        return result

    async def edit_and_resend(self, message_id: str, content: str) -> TurnResult:
        """Drop ``message_id`` and everything after it, then send ``content``."""
        index = next((i for i, m in enumerate(self.messages) if m.id == message_id), None)
        if index is None or self.messages[index].role != "user":
            raise ValidationError(f"Unknown user message: {message_id}")
        if self.session_id:
            self._require_stored(message_id)
            await self._api.truncate_from(self.session_id, message_id)
        del self.messages[index:]
        return await self.send_message(content)

    async def regenerate(self) -> TurnResult:
        """Replace the last assistant answer, reusing the stored user message."""
        index = next(
            (i for i in range(len(self.messages) - 1, -1, -1) if self.messages[i].role == "assistant"),
            None,
        )
        if index is None or index == 0 or self.messages[index - 1].role != "user":
            raise ValidationError("Nothing to regenerate")
        answer = self.messages[index]
        question = self.messages[index - 1].content
        if self.session_id:
            self._require_stored(answer.id)
            await self._api.truncate_from(self.session_id, answer.id)
        del self.messages[index:]
        return await self.send_message(question, skip_user_persist=True)

    @staticmethod
    def _require_stored(message_id: str) -> None:
        # Local ids have no server row to truncate from; reload history first.
        if is_local_id(message_id):
            raise ValidationError(f"Message {message_id} is not saved yet, reload the session before editing")

    def _build_payload(
        self, session_id: str, history: list[dict[str, str]], skip_user_persist: bool
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "messages": history,
            "sessionId": session_id,
            "thinking": self.thinking,
            "selectedPageIds": list(self.selected_page_ids),
            "isWebSearchEnabled": self.web_search_enabled,
            "skipUserPersist": skip_user_persist,
        }
        if self.model:
            payload["model"] = self.model
        return payload

    def _discard(self, *messages: Optional[ChatMessage]) -> None:
        doomed = {id(message) for message in messages if message is not None}
        self.messages = [m for m in self.messages if id(m) not in doomed]

    async def _after_completion(self, session_id: str) -> None:
        try:
            await self.load_history(session_id)
            if sum(1 for m in self.messages if m.role == "user") == 1:
                await self._api.auto_title(session_id)
        except ChatError as exc:
            logger.warning("Failed to refresh session %s after turn: %s", session_id, exc)
