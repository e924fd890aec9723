# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.streaming.events import Source

LOCAL_ID_PREFIX = "local-"


def local_id() -> str:
    """Placeholder id for state that has not reached the server yet."""
    return f"{LOCAL_ID_PREFIX}{uuid4().hex}"


def is_local_id(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(LOCAL_ID_PREFIX)


class ChatMessage(BaseModel):
    """A transcript entry as the client holds it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=local_id)
    session_id: Optional[str] = None
    role: Literal["user", "assistant"]
    content: str = ""
    thinking: Optional[str] = None
    sources: list[Source] = Field(default_factory=list)
    message_type: Literal["chat", "tool_use", "tool_result"] = "chat"
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_status: Optional[Literal["success", "error"]] = None
    clarification: bool = False
    seq: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_tool_use(self) -> bool:
        return self.message_type == "tool_use"

    @property
    def is_tool_result(self) -> bool:
        return self.message_type == "tool_result"

    @property
    def is_plain_assistant(self) -> bool:
        return self.role == "assistant" and self.message_type == "chat" and not self.clarification

    def to_history(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
