# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from .agent_client import AgentRuntimeClient
from .agent_stream import AgentEventKind, AgentRunState, AgentStreamReconciler, parse_agent_event
from .chat_client import ChatApiClient, ChatTurnState, TurnResult, TurnStatus
from .conversation import ConversationController
from .design import DesignSession
from .grouping import MessageGroup, group_messages
from .models import ChatMessage

__all__ = [
    "AgentEventKind",
    "AgentRunState",
    "AgentRuntimeClient",
    "AgentStreamReconciler",
    "ChatApiClient",
    "ChatMessage",
    "ChatTurnState",
    "ConversationController",
    "DesignSession",
    "MessageGroup",
    "TurnResult",
    "TurnStatus",
    "group_messages",
    "parse_agent_event",
]
