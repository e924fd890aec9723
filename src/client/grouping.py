# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Turns a flat transcript into render groups for agentic conversations.

The pass is greedy and strictly left to right, so the same transcript always
yields the same groups and every message lands in exactly one group.
"""

import json
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional, Sequence, Union

from .models import ChatMessage

PRESENT_FILES_TOOLS = frozenset({"present_files", "present_file"})
SUBAGENT_TOOL = "task"


@dataclass(slots=True)
class HumanGroup:
    id: str
    messages: List[ChatMessage]
    type: Literal["human"] = "human"


@dataclass(slots=True)
class AssistantMessageGroup:
    id: str
    messages: List[ChatMessage]
    type: Literal["assistant:message"] = "assistant:message"


@dataclass(slots=True)
class ProcessingGroup:
    id: str
    trigger_message: Optional[ChatMessage]
    tool_responses: List[ChatMessage]
    result_message: Optional[ChatMessage] = None
    type: Literal["assistant:processing"] = "assistant:processing"

    @property
    def in_progress(self) -> bool:
        return self.result_message is None


@dataclass(slots=True)
class ClarificationGroup:
    id: str
    messages: List[ChatMessage]
    type: Literal["assistant:clarification"] = "assistant:clarification"


@dataclass(slots=True)
class PresentFilesGroup:
    id: str
    messages: List[ChatMessage]
    files: List[str]
    type: Literal["assistant:present-files"] = "assistant:present-files"


@dataclass(slots=True)
class SubagentTask:
    id: str
    subagent_type: str
    description: str
    prompt: str
    status: Literal["in_progress", "completed", "error"]


@dataclass(slots=True)
class SubagentGroup:
    id: str
    messages: List[ChatMessage]
    tasks: List[SubagentTask] = field(default_factory=list)
    type: Literal["assistant:subagent"] = "assistant:subagent"


MessageGroup = Union[
    HumanGroup,
    AssistantMessageGroup,
    ProcessingGroup,
    ClarificationGroup,
    PresentFilesGroup,
    SubagentGroup,
]


def group_messages(messages: Sequence[ChatMessage]) -> List[MessageGroup]:
    groups: List[MessageGroup] = []
    i = 0
    total = len(messages)

    while i < total:
        msg = messages[i]

        if msg.role == "user":
            start = i
            while i < total and messages[i].role == "user":
                i += 1
            human = list(messages[start:i])
            groups.append(HumanGroup(id=f"human-{human[0].id}", messages=human))
            continue

        if msg.clarification:
            groups.append(ClarificationGroup(id=f"clarification-{msg.id}", messages=[msg]))
            i += 1
            continue

        if msg.is_tool_use or msg.is_tool_result:
            trigger: Optional[ChatMessage] = None
            if msg.is_tool_use:
                trigger = msg
                i += 1
            tool_responses: List[ChatMessage] = []
            while i < total and messages[i].is_tool_result and not messages[i].clarification:
                tool_responses.append(messages[i])
                i += 1
            result: Optional[ChatMessage] = None
            if i < total and messages[i].is_plain_assistant:
                result = messages[i]
                i += 1
            groups.append(_close_processing(trigger, tool_responses, result))
            continue

        start = i
        while i < total and messages[i].is_plain_assistant:
            i += 1
        replies = list(messages[start:i])
        groups.append(AssistantMessageGroup(id=f"message-{replies[0].id}", messages=replies))

    return groups


def _close_processing(
    trigger: Optional[ChatMessage],
    tool_responses: List[ChatMessage],
    result: Optional[ChatMessage],
) -> MessageGroup:
    anchor = trigger or tool_responses[0]
    members = [m for m in (trigger, *tool_responses, result) if m is not None]

    present = [r for r in tool_responses if r.tool_name in PRESENT_FILES_TOOLS]
    if present:
        files: List[str] = []
        for response in present:
            files.extend(_extract_files(response.content))
        return PresentFilesGroup(id=f"present-files-{anchor.id}", messages=members, files=files)

    calls = (trigger.tool_calls or []) if trigger else []
    if calls and all(call.get("name") == SUBAGENT_TOOL for call in calls):
        return SubagentGroup(
            id=f"subagent-{anchor.id}",
            messages=members,
            tasks=[_subagent_task(call, tool_responses) for call in calls],
        )

    return ProcessingGroup(
        id=f"processing-{anchor.id}",
        trigger_message=trigger,
        tool_responses=tool_responses,
        result_message=result,
    )


def _extract_files(content: str) -> List[str]:
    """File paths from a present-files tool result (JSON list or one path per line)."""
    text = content.strip()
    if not text:
        return []
    try:
        data: Any = json.loads(text)
    except ValueError:
        return [line.strip() for line in text.splitlines() if line.strip()]
    if isinstance(data, dict):
        data = data.get("files") or data.get("filepaths") or []
    if isinstance(data, str):
        return [data]
    if isinstance(data, list):
        return [str(item) for item in data if item]
    return [text]


def _subagent_task(call: dict[str, Any], tool_responses: List[ChatMessage]) -> SubagentTask:
    call_id = str(call.get("id", ""))
    args = call.get("args") or {}
    response = next((r for r in tool_responses if r.tool_call_id == call_id), None)
    if response is None:
        status = "in_progress"
    elif response.tool_status == "error":
        status = "error"
    else:
        status = "completed"
    return SubagentTask(
        id=call_id,
        subagent_type=str(args.get("subagent_type", "")),
        description=str(args.get("description", "")),
        prompt=str(args.get("prompt", "")),
        status=status,
    )
