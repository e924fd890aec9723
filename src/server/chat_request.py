# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"] = Field(
        ..., description="The role of the message sender (user or assistant)"
    )
    content: str = Field(..., description="The text content of the message")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(
        ..., min_length=1, description="Recent conversation history, oldest first"
    )
    session_id: Optional[str] = Field(
        None, alias="sessionId", description="Session the turn is persisted to"
    )
    model: Optional[str] = Field(None, description="Model id from the routing table")
    thinking: bool = Field(False, description="Stream the model's reasoning trace when supported")
    selected_page_ids: list[str] = Field(
        default_factory=list,
        alias="selectedPageIds",
        description="Pinned pages used as the only context",
    )
    is_web_search_enabled: bool = Field(
        False, alias="isWebSearchEnabled", description="Ground the answer on web search results"
    )
    skip_user_persist: bool = Field(
        False,
        alias="skipUserPersist",
        description="The user message is already stored (regeneration)",
    )

    @property
    def last_user_message(self) -> Optional[ChatMessage]:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None


class ClarifyObjectiveRequest(BaseModel):
    message: str = Field(..., min_length=1, description="The user's first design request")
    model: Optional[str] = Field(None, description="Model id from the routing table")


class ClarifyObjectiveResponse(BaseModel):
    objective: str = Field(..., description="A clear, actionable objective statement")
