import json

import httpx
import pytest

from src.client.chat_client import ChatApiClient, TurnStatus
from src.client.conversation import ConversationController
from src.client.models import ChatMessage
from src.errors import ValidationError
from src.streaming import DONE_FRAME, ChunkEvent, ErrorEvent, MemoryEvent, Source, SourcesEvent, encode_event


def stored(id_, role, content):
    return {"id": id_, "sessionId": "s-1", "role": role, "content": content, "messageType": "chat"}


class FakeChatServer:
    """Routes the handful of endpoints the controller talks to."""

    def __init__(self):
        self.frames = [encode_event(ChunkEvent(text="Hello")), DONE_FRAME]
        self.status = 200
        self.history = []
        self.payloads = []
        self.truncated = []
        self.titled = []
        self.created = 0
        self.on_frame = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/chat/stream":
            self.payloads.append(json.loads(request.content))
            if self.status != 200:
                return httpx.Response(self.status, json={"detail": "Session not found"})
            return httpx.Response(200, content=self._body(), headers={"content-type": "text/event-stream"})
        if path == "/api/sessions" and request.method == "POST":
            self.created += 1
            return httpx.Response(201, json={"session": {"id": "s-1", "title": "New Chat"}})
        if path == "/api/sessions/s-1" and request.method == "GET":
            return httpx.Response(200, json={"session": {"id": "s-1"}, "messages": self.history})
        if path.endswith("/truncate"):
            self.truncated.append(path.split("/")[-2])
            return httpx.Response(200, json={"deleted": 2})
        if path.endswith("/auto-title"):
            self.titled.append(path)
            return httpx.Response(200, json={"title": "Greeting"})
        return httpx.Response(404, json={"detail": "not found"})

    async def _body(self):
        for index, frame in enumerate(self.frames):
            if self.on_frame is not None:
                self.on_frame(index)
            yield frame.encode("utf-8")


@pytest.fixture
def server():
    return FakeChatServer()


@pytest.fixture
def controller(server):
    api = ChatApiClient(
        "http://chat.test", workspace_id="ws-1", user_id="u-1", transport=httpx.MockTransport(server.handler)
    )
    return ConversationController(api, model="deepseek-chat")


@pytest.mark.asyncio
async def test_send_message_streams_and_reloads_history(server, controller):
    source = Source(page_id="p-1", title="Intro", similarity=0.9)
    server.frames = [
        encode_event(SourcesEvent(sources=[source])),
        encode_event(MemoryEvent(enabled=False, loaded=False)),
        encode_event(ChunkEvent(text="Hel")),
        encode_event(ChunkEvent(text="lo")),
        DONE_FRAME,
    ]
    server.history = [stored("m1", "user", "hi"), stored("m2", "assistant", "Hello")]

    result = await controller.send_message("  hi ")

    assert result.status is TurnStatus.COMPLETED
    assert result.state.content == "Hello"
    assert result.state.sources[0].page_id == "p-1"
    payload = server.payloads[0]
    assert payload["sessionId"] == "s-1"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["model"] == "deepseek-chat"
    assert payload["skipUserPersist"] is False
    assert [m.id for m in controller.messages] == ["m1", "m2"]
    assert server.created == 1
    assert server.titled == ["/api/sessions/s-1/auto-title"]


@pytest.mark.asyncio
async def test_stop_after_three_chunks_restores_transcript(server, controller):
    server.history = [stored("m1", "user", "earlier"), stored("m2", "assistant", "reply")]
    await controller.load_history("s-1")
    before = [m.id for m in controller.messages]
    server.frames = [encode_event(ChunkEvent(text=f"part{i} ")) for i in range(6)] + [DONE_FRAME]

    def stop_after_third(index):
        if index == 3:
            controller.stop()

    server.on_frame = stop_after_third

    result = await controller.send_message("new question")

    assert result.status is TurnStatus.CANCELLED
    assert result.state.content == "part0 part1 part2 "
    assert [m.id for m in controller.messages] == before
    assert controller.last_error is None
    assert controller.is_streaming is False
    assert server.titled == []


@pytest.mark.asyncio
async def test_error_event_keeps_user_message(server, controller):
    server.frames = [encode_event(ErrorEvent(message="provider down"))]

    result = await controller.send_message("hi")

    assert result.status is TurnStatus.ERROR
    assert controller.last_error == "provider down"
    assert [(m.role, m.content) for m in controller.messages] == [("user", "hi")]


@pytest.mark.asyncio
async def test_partial_answer_survives_error(server, controller):
    server.frames = [encode_event(ChunkEvent(text="Half an")), encode_event(ErrorEvent(message="cut off"))]

    await controller.send_message("hi")

    assert [(m.role, m.content) for m in controller.messages] == [("user", "hi"), ("assistant", "Half an")]


@pytest.mark.asyncio
async def test_stream_without_done_is_an_error(server, controller):
    server.frames = [encode_event(ChunkEvent(text="Hello"))]

    result = await controller.send_message("hi")

    assert result.status is TurnStatus.ERROR
    assert result.error == "Stream ended before completion"


@pytest.mark.asyncio
async def test_rejected_stream_reports_http_detail(server, controller):
    server.status = 404

    result = await controller.send_message("hi")

    assert result.status is TurnStatus.ERROR
    assert controller.last_error == "HTTP 404: Session not found"


@pytest.mark.asyncio
async def test_edit_and_resend_truncates_then_sends(server, controller):
    server.history = [
        stored("m1", "user", "first"),
        stored("m2", "assistant", "answer one"),
        stored("m3", "user", "second"),
        stored("m4", "assistant", "answer two"),
    ]
    await controller.load_history("s-1")

    await controller.edit_and_resend("m3", "second, edited")

    assert server.truncated == ["m3"]
    assert server.payloads[0]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "answer one"},
        {"role": "user", "content": "second, edited"},
    ]


@pytest.mark.asyncio
async def test_regenerate_reuses_stored_question(server, controller):
    server.history = [stored("m1", "user", "question"), stored("m2", "assistant", "old answer")]
    await controller.load_history("s-1")

    await controller.regenerate()

    assert server.truncated == ["m2"]
    payload = server.payloads[0]
    assert payload["skipUserPersist"] is True
    assert payload["messages"] == [{"role": "user", "content": "question"}]


@pytest.mark.asyncio
async def test_invalid_sends_are_rejected(controller):
    with pytest.raises(ValidationError):
        await controller.send_message("   ")
    with pytest.raises(ValidationError):
        await controller.edit_and_resend("missing", "text")
    with pytest.raises(ValidationError):
        await controller.regenerate()


@pytest.mark.asyncio
async def test_local_session_id_is_replaced(server, controller):
    controller.session_id = ChatMessage(role="user").id

    assert await controller.ensure_session() == "s-1"
    assert await controller.ensure_session() == "s-1"
    assert server.created == 1


@pytest.mark.asyncio
async def test_edit_of_unsaved_message_is_refused(server, controller):
    server.frames = [encode_event(ErrorEvent(message="provider down"))]
    await controller.send_message("hi")
    local_id = controller.messages[-1].id

    with pytest.raises(ValidationError):
        await controller.edit_and_resend(local_id, "hi again")

    assert server.truncated == []
    assert len(server.payloads) == 1
    assert [m.content for m in controller.messages] == ["hi"]
