from src.client.grouping import (
    AssistantMessageGroup,
    ClarificationGroup,
    HumanGroup,
    PresentFilesGroup,
    ProcessingGroup,
    SubagentGroup,
    group_messages,
)
from src.client.models import ChatMessage


def user(id_, content="hi"):
    return ChatMessage(id=id_, role="user", content=content)


def reply(id_, content="answer"):
    return ChatMessage(id=id_, role="assistant", content=content)


def tool_use(id_, *calls):
    return ChatMessage(id=id_, role="assistant", message_type="tool_use", tool_calls=list(calls))


def tool_result(id_, call_id, name, content="", status="success"):
    return ChatMessage(
        id=id_,
        role="assistant",
        message_type="tool_result",
        tool_call_id=call_id,
        tool_name=name,
        tool_status=status,
        content=content,
    )


def test_consecutive_users_and_replies_merge():
    groups = group_messages([user("u1"), user("u2"), reply("a1"), reply("a2"), user("u3")])

    assert [type(g) for g in groups] == [HumanGroup, AssistantMessageGroup, HumanGroup]
    assert [m.id for m in groups[0].messages] == ["u1", "u2"]
    assert [m.id for m in groups[1].messages] == ["a1", "a2"]
    assert groups[0].id == "human-u1"


def test_processing_group_absorbs_results_and_reply():
    messages = [
        user("u1"),
        tool_use("t1", {"id": "c1", "name": "web_search", "args": {}}),
        tool_result("r1", "c1", "web_search", "found"),
        reply("a1"),
    ]

    groups = group_messages(messages)

    processing = groups[1]
    assert isinstance(processing, ProcessingGroup)
    assert processing.trigger_message.id == "t1"
    assert [m.id for m in processing.tool_responses] == ["r1"]
    assert processing.result_message.id == "a1"
    assert processing.in_progress is False
    assert len(groups) == 2


def test_processing_without_reply_is_in_progress():
    groups = group_messages([tool_use("t1", {"id": "c1", "name": "read_file", "args": {}})])

    assert isinstance(groups[0], ProcessingGroup)
    assert groups[0].result_message is None
    assert groups[0].in_progress is True


def test_present_files_group_extracts_files():
    messages = [
        tool_use("t1", {"id": "c1", "name": "present_files", "args": {}}),
        tool_result("r1", "c1", "present_files", '["/mnt/outputs/index.html", "/mnt/outputs/app.css"]'),
        tool_result("r2", "c2", "present_file", "/mnt/outputs/logo.svg"),
        reply("a1", "Here you go"),
    ]

    (group,) = group_messages(messages)

    assert isinstance(group, PresentFilesGroup)
    assert group.files == ["/mnt/outputs/index.html", "/mnt/outputs/app.css", "/mnt/outputs/logo.svg"]
    assert [m.id for m in group.messages] == ["t1", "r1", "r2", "a1"]


def test_all_task_calls_form_subagent_group():
    messages = [
        tool_use(
            "t1",
            {"id": "c1", "name": "task", "args": {"subagent_type": "coder", "description": "Build", "prompt": "p1"}},
            {"id": "c2", "name": "task", "args": {"subagent_type": "researcher", "description": "Find", "prompt": "p2"}},
        ),
        tool_result("r1", "c1", "task", "done"),
        tool_result("r2", "c2", "task", "failed", status="error"),
    ]

    (group,) = group_messages(messages)

    assert isinstance(group, SubagentGroup)
    assert [(t.id, t.subagent_type, t.status) for t in group.tasks] == [
        ("c1", "coder", "completed"),
        ("c2", "researcher", "error"),
    ]


def test_pending_subagent_task_is_in_progress():
    (group,) = group_messages([tool_use("t1", {"id": "c1", "name": "task", "args": {}})])

    assert isinstance(group, SubagentGroup)
    assert group.tasks[0].status == "in_progress"


def test_mixed_calls_stay_processing():
    (group,) = group_messages(
        [tool_use("t1", {"id": "c1", "name": "task", "args": {}}, {"id": "c2", "name": "bash", "args": {}})]
    )

    assert isinstance(group, ProcessingGroup)


def test_clarification_is_a_singleton_group():
    clarification = ChatMessage(id="clarification-1", role="assistant", content="Which style?", clarification=True)

    groups = group_messages([reply("a0"), clarification, reply("a1")])

    assert [type(g) for g in groups] == [AssistantMessageGroup, ClarificationGroup, AssistantMessageGroup]


def test_clarification_tool_result_is_not_absorbed():
    question = ChatMessage(
        id="r1",
        role="assistant",
        message_type="tool_result",
        tool_call_id="c1",
        tool_name="ask_clarification",
        content="Light or dark theme?",
        clarification=True,
    )
    messages = [
        user("u1"),
        tool_use("t1", {"id": "c1", "name": "ask_clarification", "args": {}}),
        question,
    ]

    groups = group_messages(messages)

    assert [type(g) for g in groups] == [HumanGroup, ProcessingGroup, ClarificationGroup]
    assert groups[1].tool_responses == []
    assert groups[1].in_progress is True
    assert groups[2].messages == [question]


def test_orphan_tool_result_forms_triggerless_group():
    groups = group_messages([tool_result("r1", "c1", "bash", "ok"), reply("a1")])

    assert len(groups) == 1
    assert isinstance(groups[0], ProcessingGroup)
    assert groups[0].trigger_message is None
    assert groups[0].result_message.id == "a1"


def test_grouping_covers_every_message_once_and_is_stable():
    messages = [
        user("u1"),
        tool_use("t1", {"id": "c1", "name": "web_search", "args": {}}),
        tool_result("r1", "c1", "web_search"),
        tool_result("r-orphan", "cx", "bash"),
        reply("a1"),
        ChatMessage(id="k1", role="assistant", content="?", clarification=True),
        user("u2"),
    ]

    first = group_messages(messages)

    assert first == group_messages(messages)
    assert [g.id for g in first] == ["human-u1", "processing-t1", "clarification-k1", "human-u2"]
    assert [m.id for m in first[1].tool_responses] == ["r1", "r-orphan"]


def test_empty_input():
    assert group_messages([]) == []
