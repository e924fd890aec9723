from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionMessage(CamelModel):
    id: str
    session_id: str
    role: Literal["user", "assistant"]
    content: str
    thinking: Optional[str] = None
    sources: list[dict[str, Any]] = Field(default_factory=list)
    message_type: Literal["chat", "tool_use", "tool_result"] = "chat"
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_status: Optional[Literal["success", "error"]] = None
    clarification: bool = False
    seq: int
    created_at: datetime


class SessionSummary(CamelModel):
    id: str
    workspace_id: str
    user_id: str
    page_id: Optional[str] = None
    title: str
    thread_id: Optional[str] = None
    selected_page_ids: list[str] = Field(default_factory=list)
    updated_at: datetime
    created_at: datetime


class SessionDetail(SessionSummary):
    messages: list[SessionMessage] = Field(default_factory=list)


class SessionCreateRequest(CamelModel):
    page_id: Optional[str] = Field(default=None, description="Page the chat was opened from.")


class SessionCreateResponse(CamelModel):
    session: SessionSummary
    memories: list[str] = Field(default_factory=list, description="What is remembered about the user.")


class SessionListResponse(CamelModel):
    sessions: list[SessionSummary]


class SessionUpdateRequest(CamelModel):
    title: Optional[str] = Field(default=None, description="Manual session title override.")

    @field_validator("title")
    @classmethod
    def validate_title_length(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Title must not be empty")
        if len(value) > 60:
            raise ValueError("Title must be 60 characters or fewer")
        return value


class ThreadUpdateRequest(CamelModel):
    thread_id: str = Field(min_length=1, description="External agent thread id.")


class MessageCreateRequest(CamelModel):
    role: Literal["user", "assistant"]
    content: str
    thinking: Optional[str] = None
    sources: list[dict[str, Any]] = Field(default_factory=list)
    message_type: Literal["chat", "tool_use", "tool_result"] = "chat"
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_status: Optional[Literal["success", "error"]] = None
    clarification: bool = False


class TruncateResponse(CamelModel):
    deleted: int


class DeleteResponse(CamelModel):
    success: bool
