from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

DEFAULT_SESSION_TITLE = "New Chat"


@dataclass(slots=True)
class SessionRecord:
    id: str
    workspace_id: str
    user_id: str
    page_id: Optional[str]
    title: str
    thread_id: Optional[str]
    selected_page_ids: list[str]
    created_at: datetime
    updated_at: datetime

    def is_owned_by(self, workspace_id: str, user_id: str) -> bool:
        return self.workspace_id == workspace_id and self.user_id == user_id


@dataclass(slots=True)
class MessageRecord:
    id: str
    session_id: str
    role: str
    content: str
    thinking: Optional[str]
    sources: list[dict[str, Any]]
    message_type: str
    tool_calls: Optional[list[dict[str, Any]]]
    tool_call_id: Optional[str]
    tool_name: Optional[str]
    tool_status: Optional[str]
    clarification: bool
    seq: int
    created_at: datetime


@dataclass(slots=True)
class NewMessage:
    """Message content before the store assigns id, seq and timestamp."""

    role: str
    content: str
    thinking: Optional[str] = None
    sources: list[dict[str, Any]] = field(default_factory=list)
    message_type: str = "chat"
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_status: Optional[str] = None
    clarification: bool = False
