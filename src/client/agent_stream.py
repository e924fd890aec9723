# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Reconciles LangGraph run streams into one transcript.

Three families of stream parts matter: ``values`` snapshots that replace the
transcript, ``messages`` deltas that extend one message, and ``custom``
progress signals from subagent tasks. Everything else is logged and dropped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Union

import httpx

from src.errors import AgentRuntimeError, CancellationSignal, ChatError

logger = logging.getLogger(__name__)

CLARIFICATION_TOOL = "ask_clarification"
AI_MESSAGE_TYPES = frozenset({"ai", "AIMessageChunk", "assistant"})
PROGRESS_TYPES = frozenset({"task_running", "task_complete", "task_error"})
IGNORED_EVENTS = frozenset(
    {"metadata", "end", "updates", "debug", "events", "tasks", "checkpoints", "messages/metadata"}
)


class AgentEventKind(str, Enum):
    STATE_SNAPSHOT = "state-snapshot"
    MESSAGE_DELTA = "message-delta"
    PROGRESS_SIGNAL = "progress-signal"
    RUN_ERROR = "run-error"


@dataclass(slots=True)
class StateSnapshot:
    messages: list[dict[str, Any]]
    artifacts: Optional[list[str]] = None
    title: Optional[str] = None
    todos: Optional[list[Any]] = None
    kind: AgentEventKind = AgentEventKind.STATE_SNAPSHOT


@dataclass(slots=True)
class MessageDelta:
    message_id: Optional[str]
    text: str = ""
    reasoning: str = ""
    # partial/complete events carry the whole message so far
    cumulative: bool = False
    kind: AgentEventKind = AgentEventKind.MESSAGE_DELTA


@dataclass(slots=True)
class ProgressSignal:
    task_id: str
    status: str
    message: Optional[str] = None
    kind: AgentEventKind = AgentEventKind.PROGRESS_SIGNAL


@dataclass(slots=True)
class RunError:
    message: str
    kind: AgentEventKind = AgentEventKind.RUN_ERROR


AgentEvent = Union[StateSnapshot, MessageDelta, ProgressSignal, RunError]


def message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(item.get("text", "")) if isinstance(item, dict) else str(item)
            for item in content
            if isinstance(item, str) or (isinstance(item, dict) and item.get("type") == "text")
        )
    return ""


def normalise_event_name(event: str) -> str:
    """``values|subgraph:1`` and friends collapse to their base family."""
    return event.split("|", 1)[0]


def parse_agent_event(event: str, data: Any) -> Optional[AgentEvent]:
    """Map a raw stream part onto the closed event union, or None to drop it."""
    name = normalise_event_name(event)

    if name == "values":
        if not isinstance(data, dict):
            logger.warning("Dropping values event with %s payload", type(data).__name__)
            return None
        return StateSnapshot(
            messages=[m for m in data.get("messages") or [] if isinstance(m, dict)],
            artifacts=list(data["artifacts"]) if isinstance(data.get("artifacts"), list) else None,
            title=data.get("title") if isinstance(data.get("title"), str) else None,
            todos=list(data["todos"]) if isinstance(data.get("todos"), list) else None,
        )

    if name in ("messages", "messages/partial", "messages/complete"):
        cumulative = name != "messages"
        if cumulative:
            chunk = data[-1] if isinstance(data, list) and data else None
        else:
            chunk = data[0] if isinstance(data, (list, tuple)) and data else data
        if not isinstance(chunk, dict):
            return None
        if (chunk.get("type") or chunk.get("role")) not in AI_MESSAGE_TYPES:
            return None
        additional = chunk.get("additional_kwargs") or {}
        return MessageDelta(
            message_id=chunk.get("id"),
            text=message_text(chunk.get("content")),
            reasoning=str(additional.get("reasoning_content") or ""),
            cumulative=cumulative,
        )

    if name == "custom":
        if isinstance(data, dict) and data.get("type") in PROGRESS_TYPES:
            return ProgressSignal(
                task_id=str(data.get("task_id", "")),
                status=data["type"],
                message=data.get("message") or data.get("error"),
            )
        logger.debug("Dropping custom event %r", data)
        return None

    if name == "error":
        if isinstance(data, dict):
            return RunError(message=str(data.get("message") or data.get("error") or data))
        return RunError(message=str(data))

    if name in IGNORED_EVENTS:
        logger.debug("Ignoring %s event", name)
    else:
        logger.warning("Dropping unknown agent stream event %r", event)
    return None


@dataclass(slots=True)
class TranscriptEntry:
    id: str
    role: str
    text: str = ""
    reasoning: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_ai(self) -> bool:
        return self.role in AI_MESSAGE_TYPES


@dataclass(slots=True)
class AgentRunState:
    """Accumulator for one run, owned by the caller and passed through."""

    entries: list[TranscriptEntry] = field(default_factory=list)
    artifacts: list[str] = field(default_factory=list)
    title: Optional[str] = None
    todos: list[Any] = field(default_factory=list)
    progress: dict[str, ProgressSignal] = field(default_factory=dict)
    clarifications: list[str] = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False

    def entry(self, message_id: Optional[str]) -> TranscriptEntry:
        if message_id is None:
            if self.entries and self.entries[-1].is_ai:
                return self.entries[-1]
            message_id = f"pending-{len(self.entries)}"
        for existing in self.entries:
            if existing.id == message_id:
                return existing
        created = TranscriptEntry(id=message_id, role="ai")
        self.entries.append(created)
        return created

    @property
    def final_text(self) -> str:
        for item in reversed(self.entries):
            if item.is_ai:
                return item.text
        return ""

    @property
    def awaiting_clarification(self) -> bool:
        return bool(self.clarifications)


MessageCallback = Callable[[TranscriptEntry], None]
ClarificationCallback = Callable[[str, str], None]
ProgressCallback = Callable[[ProgressSignal], None]
FinishCallback = Callable[[AgentRunState], None]
ErrorCallback = Callable[[str], None]


class AgentStreamReconciler:
    """Applies stream parts to an ``AgentRunState`` and fires callbacks.

    Clarification ids seen by this reconciler are remembered across runs, so
    the same request replayed in a later snapshot is reported only once.
    """

    def __init__(
        self,
        *,
        on_message: Optional[MessageCallback] = None,
        on_clarification: Optional[ClarificationCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_finish: Optional[FinishCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.on_message = on_message
        self.on_clarification = on_clarification
        self.on_progress = on_progress
        self.on_finish = on_finish
        self.on_error = on_error
        self._seen_clarifications: set[str] = set()

    def apply(self, state: AgentRunState, event: str, data: Any) -> None:
        parsed = parse_agent_event(event, data)
        if parsed is None:
            return
        if isinstance(parsed, StateSnapshot):
            self._apply_snapshot(state, parsed)
        elif isinstance(parsed, MessageDelta):
            self._apply_delta(state, parsed)
        elif isinstance(parsed, ProgressSignal):
            state.progress[parsed.task_id] = parsed
            if self.on_progress is not None:
                self.on_progress(parsed)
        else:
            raise AgentRuntimeError(parsed.message)

    async def consume(
        self,
        parts: AsyncIterator[Any],
        state: Optional[AgentRunState] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentRunState:
        state = state if state is not None else AgentRunState()
        try:
            async for event, data in parts:
                if cancel_event is not None and cancel_event.is_set():
                    raise CancellationSignal()
                self.apply(state, event, data)
        except CancellationSignal:
            logger.info("Agent run cancelled, discarding %d entries", len(state.entries))
            state.cancelled = True
            state.entries.clear()
            await _close(parts)
            return state
        except (ChatError, httpx.HTTPError) as exc:
            state.error = str(exc) or exc.__class__.__name__
            logger.error("Agent run failed: %s", state.error)
            await _close(parts)
            if self.on_error is not None:
                self.on_error(state.error)
            return state

        if self.on_finish is not None:
            self.on_finish(state)
        return state

    def _apply_snapshot(self, state: AgentRunState, snapshot: StateSnapshot) -> None:
        state.entries = [_entry_from_message(message, index) for index, message in enumerate(snapshot.messages)]
        if snapshot.artifacts is not None:
            state.artifacts = snapshot.artifacts
        if snapshot.title is not None:
            state.title = snapshot.title
        if snapshot.todos is not None:
            state.todos = snapshot.todos

        for key, content in _clarifications(snapshot.messages):
            if key in self._seen_clarifications:
                continue
            self._seen_clarifications.add(key)
            state.clarifications.append(content)
            logger.info("Clarification requested (%s)", key)
            if self.on_clarification is not None:
                self.on_clarification(content, key)

        if state.entries and state.entries[-1].is_ai and state.entries[-1].text:
            if self.on_message is not None:
                self.on_message(state.entries[-1])

    def _apply_delta(self, state: AgentRunState, delta: MessageDelta) -> None:
        target = state.entry(delta.message_id)
        if delta.cumulative:
            target.text = delta.text
            if delta.reasoning:
                target.reasoning = delta.reasoning
        else:
            target.text += delta.text
            target.reasoning += delta.reasoning
        if self.on_message is not None and (delta.text or delta.reasoning):
            self.on_message(target)


def _entry_from_message(message: dict[str, Any], index: int) -> TranscriptEntry:
    additional = message.get("additional_kwargs") or {}
    return TranscriptEntry(
        id=str(message.get("id") or f"snapshot-{index}"),
        role=str(message.get("type") or message.get("role") or ""),
        text=message_text(message.get("content")),
        reasoning=str(additional.get("reasoning_content") or ""),
        name=message.get("name"),
        tool_call_id=message.get("tool_call_id"),
        tool_calls=list(message.get("tool_calls") or []),
    )


def _clarifications(messages: Iterable[dict[str, Any]]) -> Iterable[tuple[str, str]]:
    for message in messages:
        if message.get("type") != "tool" or message.get("name") != CLARIFICATION_TOOL:
            continue
        key = message.get("id") or message.get("tool_call_id")
        content = message_text(message.get("content"))
        if key and content:
            yield str(key), content


async def _close(parts: AsyncIterator[Any]) -> None:
    aclose = getattr(parts, "aclose", None)
    if aclose is not None:
        await aclose()
