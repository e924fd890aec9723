# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import logging
from typing import Optional

import httpx

from src.errors import ChatError, ValidationError

from .agent_client import AgentRuntimeClient
from .agent_stream import AgentRunState, AgentStreamReconciler, TranscriptEntry
from .chat_client import ChatApiClient
from .models import ChatMessage

logger = logging.getLogger(__name__)


class DesignSession:
    """Design-mode conversation backed by an agent thread.

    The thread is created on the first message. While the agent waits on a
    clarification, the next user message resumes the run instead of starting
    a new one. Design mode ends once a run produces artifacts.
    """

    def __init__(
        self,
        runtime: AgentRuntimeClient,
        api: Optional[ChatApiClient] = None,
        *,
        session_id: Optional[str] = None,
        thread_id: Optional[str] = None,
        clarify_objective: bool = True,
    ) -> None:
        self._runtime = runtime
        self._api = api
        self._clarify = clarify_objective
        self.session_id = session_id
        self.thread_id = thread_id
        self.messages: list[ChatMessage] = []
        self.design_mode = True
        self.awaiting_clarification = False
        self.objective: Optional[str] = None
        self.artifacts: list[str] = []
        self.streaming_text = ""
        self._cancel_event: Optional[asyncio.Event] = None
        self._reconciler = AgentStreamReconciler(
            on_message=self._on_message,
            on_clarification=self._on_clarification,
            on_finish=self._on_finish,
            on_error=self._on_error,
        )

    @property
    def is_streaming(self) -> bool:
        return self._cancel_event is not None

    def stop(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def send(self, content: str) -> Optional[AgentRunState]:
        content = content.strip()
        if not content:
            raise ValidationError("Message must not be empty")
        if self.is_streaming:
            raise ValidationError("A design run is already streaming")

        self.messages.append(ChatMessage(role="user", content=content, session_id=self.session_id))
        self.streaming_text = ""

        if self.thread_id is None:
            await self._clarify_objective(content)
            try:
                self.thread_id = await self._runtime.create_thread()
            except httpx.HTTPError as exc:
                logger.error("Failed to create agent thread: %s", exc)
                self._on_error(str(exc) or exc.__class__.__name__)
                return None
            await self._bind_thread()

        resuming = self.awaiting_clarification
        try:
            if resuming:
                logger.info("Resuming thread %s with clarification answer", self.thread_id)
                parts = self._runtime.resume(self.thread_id, content)
            else:
                parts = self._runtime.stream_run(self.thread_id, content)
        except httpx.HTTPError as exc:
            logger.error("Failed to start agent run on thread %s: %s", self.thread_id, exc)
            self._on_error(str(exc) or exc.__class__.__name__)
            return None

        self._cancel_event = asyncio.Event()
        try:
            state = await self._reconciler.consume(parts, cancel_event=self._cancel_event)
        finally:
            self._cancel_event = None
            self.streaming_text = ""

        # The answer is only consumed once the resumed run completes.
        if resuming and state.error is None and not state.cancelled and not state.clarifications:
            self.awaiting_clarification = False
        return state

    async def _clarify_objective(self, content: str) -> None:
        if not self._clarify or self._api is None:
            return
        try:
            self.objective = await self._api.clarify_objective(content)
            logger.info("Design objective: %s", self.objective)
        except ChatError as exc:
            logger.warning("Objective clarification failed: %s", exc)

    async def _bind_thread(self) -> None:
        if self._api is None or not self.session_id or self.thread_id is None:
            return
        try:
            await self._api.bind_thread(self.session_id, self.thread_id)
        except ChatError as exc:
            logger.warning("Failed to bind thread %s to session %s: %s", self.thread_id, self.session_id, exc)

    def _on_message(self, entry: TranscriptEntry) -> None:
        self.streaming_text = entry.text

    def _on_clarification(self, content: str, key: str) -> None:
        self.awaiting_clarification = True
        self.messages.append(
            ChatMessage(
                id=f"clarification-{key}",
                role="assistant",
                content=content,
                session_id=self.session_id,
                clarification=True,
            )
        )

    def _on_finish(self, state: AgentRunState) -> None:
        text = state.final_text
        if text:
            self.messages.append(ChatMessage(role="assistant", content=text, session_id=self.session_id))
        if state.artifacts:
            logger.info("Artifacts produced, leaving design mode")
            self.artifacts = list(state.artifacts)
            self.design_mode = False

    def _on_error(self, message: str) -> None:
        self.messages.append(
            ChatMessage(role="assistant", content=f"Error: {message}", session_id=self.session_id)
        )
