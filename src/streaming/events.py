# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class Source(BaseModel):
    """Citation snapshot attached to an assistant answer."""

    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(alias="pageId")
    title: str = ""
    slug_id: str = Field(default="", alias="slugId")
    space_slug: str = Field(default="", alias="spaceSlug")
    url: str | None = None
    excerpt: str = ""
    similarity: float = 0.0
    chunk_index: int = Field(default=0, alias="chunkIndex")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class StreamEventType(str, Enum):
    SOURCES = "sources"
    CHUNK = "chunk"
    THINKING = "thinking"
    MEMORY = "memory"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SourcesEvent:
    sources: list[Source]
    type: StreamEventType = StreamEventType.SOURCES


@dataclass(frozen=True, slots=True)
class ChunkEvent:
    text: str
    type: StreamEventType = StreamEventType.CHUNK


@dataclass(frozen=True, slots=True)
class ThinkingEvent:
    text: str
    type: StreamEventType = StreamEventType.THINKING


@dataclass(frozen=True, slots=True)
class MemoryEvent:
    enabled: bool
    loaded: bool
    type: StreamEventType = StreamEventType.MEMORY


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    type: StreamEventType = StreamEventType.ERROR


StreamEvent = Union[SourcesEvent, ChunkEvent, ThinkingEvent, MemoryEvent, ErrorEvent]


def event_payload(event: StreamEvent) -> dict[str, Any]:
    """Wire payload ``{type, data}`` for an event."""
    if isinstance(event, SourcesEvent):
        data: Any = [source.to_wire() for source in event.sources]
    elif isinstance(event, (ChunkEvent, ThinkingEvent)):
        data = event.text
    elif isinstance(event, MemoryEvent):
        data = {"enabled": event.enabled, "loaded": event.loaded}
    elif isinstance(event, ErrorEvent):
        data = event.message
    else:  # pragma: no cover - closed union
        raise TypeError(f"Unsupported stream event: {event!r}")
    return {"type": event.type.value, "data": data}


def event_from_payload(payload: Any) -> StreamEvent:
    """Build an event from a decoded ``{type, data}`` payload.

    Raises ValueError for payloads that do not match the closed union so the
    caller can log and drop them.
    """
    if not isinstance(payload, dict):
        raise ValueError("Stream payload must be an object")
    raw_type = payload.get("type")
    try:
        event_type = StreamEventType(raw_type)
    except ValueError as exc:
        raise ValueError(f"Unknown stream event type: {raw_type!r}") from exc
    data = payload.get("data")

    if event_type is StreamEventType.SOURCES:
        return SourcesEvent(sources=[Source.model_validate(item) for item in data or []])
    if event_type is StreamEventType.CHUNK:
        return ChunkEvent(text=str(data or ""))
    if event_type is StreamEventType.THINKING:
        return ThinkingEvent(text=str(data or ""))
    if event_type is StreamEventType.MEMORY:
        data = data if isinstance(data, dict) else {}
        return MemoryEvent(enabled=bool(data.get("enabled")), loaded=bool(data.get("loaded")))
    return ErrorEvent(message=str(data or "Unknown error"))
