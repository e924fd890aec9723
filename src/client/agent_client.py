# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from typing import Any, AsyncIterator, Optional

from langgraph_sdk import get_client
from langgraph_sdk.client import LangGraphClient

from src.config.loader import get_bool_env, get_int_env, get_str_env

logger = logging.getLogger(__name__)

STREAM_MODES = ["values", "messages-tuple", "custom"]


class AgentRuntimeClient:
    """Thin wrapper over the LangGraph server API used by design mode."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        assistant_id: Optional[str] = None,
        client: Optional[LangGraphClient] = None,
    ) -> None:
        self._client = client or get_client(url=url or get_str_env("LANGGRAPH_BASE_URL") or None)
        self.assistant_id = assistant_id or get_str_env("LANGGRAPH_ASSISTANT_ID", "lead_agent")
        self.model_name = get_str_env("LANGGRAPH_MODEL_NAME", "deepseek-reasoner")
        self.thinking_enabled = get_bool_env("LANGGRAPH_THINKING_ENABLED", False)
        self.recursion_limit = get_int_env("LANGGRAPH_RECURSION_LIMIT", 1000)

    async def create_thread(self) -> str:
        thread = await self._client.threads.create()
        thread_id = thread["thread_id"]
        logger.info("Created agent thread %s", thread_id)
        return thread_id

    def stream_run(self, thread_id: str, content: str) -> AsyncIterator[Any]:
        """Start a run with a fresh user message."""
        return self._client.runs.stream(
            thread_id,
            self.assistant_id,
            input={"messages": [{"role": "user", "content": content}]},
            stream_mode=STREAM_MODES,
            config=self._run_config(thread_id),
        )

    def resume(self, thread_id: str, answer: str) -> AsyncIterator[Any]:
        """Continue an interrupted run with the user's clarification answer."""
        return self._client.runs.stream(
            thread_id,
            self.assistant_id,
            command={"resume": answer},
            stream_mode=STREAM_MODES,
            config=self._run_config(thread_id),
        )

    def _run_config(self, thread_id: str) -> dict[str, Any]:
        return {
            "recursion_limit": self.recursion_limit,
            "configurable": {
                "model_name": self.model_name,
                "thinking_enabled": self.thinking_enabled,
                "is_plan_mode": True,
                "thread_id": thread_id,
            },
        }
