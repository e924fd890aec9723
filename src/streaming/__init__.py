# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from .codec import (
    DONE_FRAME,
    STREAM_DONE,
    SSEParser,
    StreamDone,
    aiter_frames,
    encode_event,
    parse_frames,
)
from .events import (
    ChunkEvent,
    ErrorEvent,
    MemoryEvent,
    Source,
    SourcesEvent,
    StreamEvent,
    StreamEventType,
    ThinkingEvent,
)

__all__ = [
    "DONE_FRAME",
    "STREAM_DONE",
    "ChunkEvent",
    "ErrorEvent",
    "MemoryEvent",
    "SSEParser",
    "Source",
    "SourcesEvent",
    "StreamDone",
    "StreamEvent",
    "StreamEventType",
    "ThinkingEvent",
    "aiter_frames",
    "encode_event",
    "parse_frames",
]
