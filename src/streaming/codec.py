# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Framing and incremental parsing of the chat SSE protocol.

Frames are ``data: <json>\\n\\n`` where the JSON is ``{"type", "data"}``; the
stream ends with the literal ``data: [DONE]`` frame on success.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Iterable, Union

from .events import ErrorEvent, StreamEvent, event_from_payload, event_payload

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"
_DATA_PREFIX = "data:"


class StreamDone:
    """Marker yielded by the parser when the terminal sentinel arrives."""

    def __repr__(self) -> str:
        return "StreamDone()"


STREAM_DONE = StreamDone()

ParsedFrame = Union[StreamEvent, StreamDone]


def encode_event(event: StreamEvent) -> str:
    try:
        json_data = json.dumps(event_payload(event), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Error serializing event data: {e}")
        json_data = json.dumps(
            event_payload(ErrorEvent(message="Serialization failed")), ensure_ascii=False
        )
    return f"data: {json_data}\n\n"


class SSEParser:
    """Incremental parser; feed it text as it arrives from the network.

    Only complete lines are interpreted. A malformed or unknown frame is logged
    and skipped without affecting the frames around it.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.skipped = 0

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, text: str) -> list[ParsedFrame]:
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        frames: list[ParsedFrame] = []
        for line in lines:
            frame = self._parse_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[ParsedFrame]:
        """Interpret whatever is left once the stream has closed."""
        remainder, self._buffer = self._buffer, ""
        frame = self._parse_line(remainder.rstrip("\r"))
        return [frame] if frame is not None else []

    def _parse_line(self, line: str) -> ParsedFrame | None:
        if not line.startswith(_DATA_PREFIX):
            return None
        raw = line[len(_DATA_PREFIX):].strip()
        if not raw:
            return None
        if raw == DONE_SENTINEL:
            return STREAM_DONE
        try:
            return event_from_payload(json.loads(raw))
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            self.skipped += 1
            logger.warning("Skipping malformed stream frame %r: %s", raw[:200], exc)
            return None


def parse_frames(chunks: Iterable[str]) -> list[ParsedFrame]:
    parser = SSEParser()
    frames: list[ParsedFrame] = []
    for chunk in chunks:
        frames.extend(parser.feed(chunk))
    frames.extend(parser.flush())
    return frames


async def aiter_frames(chunks: AsyncIterator[str]) -> AsyncIterator[ParsedFrame]:
    parser = SSEParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
    for frame in parser.flush():
        yield frame
