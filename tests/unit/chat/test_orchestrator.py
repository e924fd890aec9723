import pytest
import pytest_asyncio
from langchain_core.messages import AIMessageChunk

from src.rag.pages import SQLitePageRepository
from src.rag.retriever import Retriever
from src.server.chat.orchestrator import ChatOrchestrator
from src.server.chat_request import ChatMessage, ChatRequest
from src.server.session.dependencies import RequestContext
from src.server.session.store import SQLiteSessionStore
from src.streaming import (
    STREAM_DONE,
    ChunkEvent,
    ErrorEvent,
    MemoryEvent,
    SourcesEvent,
    ThinkingEvent,
    parse_frames,
)
from src.memory.service import MemoryService
from tests.unit.fakes import FakeMemoryBackend, chunked_llm_factory, text_chunks

CTX = RequestContext(workspace_id="ws-1", user_id="u-1")


@pytest_asyncio.fixture
async def store(tmp_path):
    store = SQLiteSessionStore(str(tmp_path / "chat.db"))
    await store.init()
    return store


@pytest_asyncio.fixture
async def pages(tmp_path):
    pages = SQLitePageRepository(str(tmp_path / "pages.db"))
    await pages.init()
    return pages


def _request(session_id=None, **kwargs) -> ChatRequest:
    kwargs.setdefault("messages", [ChatMessage(role="user", content="Where is the style guide?")])
    return ChatRequest(session_id=session_id, **kwargs)


async def _collect(orchestrator, request, **kwargs):
    return parse_frames([frame async for frame in orchestrator.stream_chat(request, CTX, **kwargs)])


@pytest.mark.asyncio
async def test_frames_are_ordered_and_answer_is_persisted(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    orchestrator = ChatOrchestrator(
        store, Retriever(pages), chunked_llm_factory(text_chunks("The ", "guide ", "is here."))
    )

    frames = await _collect(orchestrator, _request(session.id))

    assert isinstance(frames[0], SourcesEvent)
    assert frames[1] == MemoryEvent(enabled=False, loaded=False)
    assert [f.text for f in frames[2:-1]] == ["The ", "guide ", "is here."]
    assert frames[-1] is STREAM_DONE

    messages = await store.get_messages(session.id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[0].content == "Where is the style guide?"
    assert messages[1].content == "The guide is here."
    assert messages[1].thinking is None


@pytest.mark.asyncio
async def test_reasoning_streams_as_thinking_when_enabled(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    chunks = [
        AIMessageChunk(content="", additional_kwargs={"reasoning_content": "Let me check. "}),
        AIMessageChunk(content="", additional_kwargs={"reasoning_content": "Found it."}),
        AIMessageChunk(content="Answer"),
    ]
    orchestrator = ChatOrchestrator(store, Retriever(pages), chunked_llm_factory(chunks))

    frames = await _collect(orchestrator, _request(session.id, model="deepseek-reasoner", thinking=True))

    thinking = [f.text for f in frames if isinstance(f, ThinkingEvent)]
    assert thinking == ["Let me check. ", "Found it."]
    first_delta = next(i for i, f in enumerate(frames) if isinstance(f, (ChunkEvent, ThinkingEvent)))
    assert isinstance(frames[first_delta - 2], SourcesEvent)

    answer = (await store.get_messages(session.id))[-1]
    assert answer.content == "Answer"
    assert answer.thinking == "Let me check. Found it."


@pytest.mark.asyncio
async def test_reasoning_is_dropped_for_models_without_thinking(store, pages):
    chunks = [
        AIMessageChunk(content="", additional_kwargs={"reasoning_content": "hidden"}),
        AIMessageChunk(content="Plain"),
    ]
    orchestrator = ChatOrchestrator(store, Retriever(pages), chunked_llm_factory(chunks))

    frames = await _collect(orchestrator, _request(model="deepseek-chat", thinking=True))

    assert not any(isinstance(f, ThinkingEvent) for f in frames)
    assert frames[-1] is STREAM_DONE


@pytest.mark.asyncio
async def test_cancel_after_three_chunks_persists_nothing(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    orchestrator = ChatOrchestrator(
        store, Retriever(pages), chunked_llm_factory(text_chunks("a", "b", "c", "d", "e"))
    )

    stream = orchestrator.stream_chat(_request(session.id), CTX)
    received = []
    chunk_count = 0
    async for frame in stream:
        received.append(frame)
        if '"type": "chunk"' in frame:
            chunk_count += 1
            if chunk_count == 3:
                break
    await stream.aclose()

    frames = parse_frames(received)
    assert STREAM_DONE not in frames
    assert await store.get_messages(session.id) == []


@pytest.mark.asyncio
async def test_client_disconnect_stops_without_sentinel(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    orchestrator = ChatOrchestrator(
        store, Retriever(pages), chunked_llm_factory(text_chunks("a", "b", "c"))
    )
    calls = {"n": 0}

    async def is_disconnected() -> bool:
        calls["n"] += 1
        return calls["n"] > 1

    frames = await _collect(orchestrator, _request(session.id), is_disconnected=is_disconnected)

    assert [f.text for f in frames if isinstance(f, ChunkEvent)] == ["a"]
    assert frames[-1] is not STREAM_DONE
    assert await store.get_messages(session.id) == []


@pytest.mark.asyncio
async def test_provider_error_after_sources(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    orchestrator = ChatOrchestrator(
        store,
        Retriever(pages),
        chunked_llm_factory([AIMessageChunk(content="partial"), RuntimeError("upstream 502")]),
    )

    frames = await _collect(orchestrator, _request(session.id))

    assert isinstance(frames[0], SourcesEvent)
    assert frames[-1] == ErrorEvent(message="upstream 502")
    assert STREAM_DONE not in frames
    assert await store.get_messages(session.id) == []


class _BrokenPages(SQLitePageRepository):
    async def get_pages(self, page_ids, workspace_id):
        raise RuntimeError("database is locked")


@pytest.mark.asyncio
async def test_error_before_sources_emits_only_error(store, tmp_path):
    orchestrator = ChatOrchestrator(
        store,
        Retriever(_BrokenPages(str(tmp_path / "broken.db"))),
        chunked_llm_factory(text_chunks("never")),
    )

    frames = await _collect(orchestrator, _request(selected_page_ids=["page-a"]))

    assert len(frames) == 1
    assert isinstance(frames[0], ErrorEvent)
    assert "database is locked" in frames[0].message


@pytest.mark.asyncio
async def test_foreign_session_is_not_written(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="someone-else")
    orchestrator = ChatOrchestrator(store, Retriever(pages), chunked_llm_factory(text_chunks("ok")))

    frames = await _collect(orchestrator, _request(session.id))

    assert frames[-1] is STREAM_DONE
    assert await store.get_messages(session.id) == []


def test_history_is_clamped(tmp_path):
    orchestrator = ChatOrchestrator(
        SQLiteSessionStore(str(tmp_path / "x.db")),
        Retriever(SQLitePageRepository(str(tmp_path / "p.db"))),
        history_limit=2,
    )
    messages = [ChatMessage(role="user", content=str(i)) for i in range(5)]

    assert [m.content for m in orchestrator.clamp_history(messages)] == ["3", "4"]


@pytest.mark.asyncio
async def test_memories_reach_prompt_and_turn_is_remembered(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    backend = FakeMemoryBackend(["Prefers answers in bullet points"])
    prompts = []
    orchestrator = ChatOrchestrator(
        store,
        Retriever(pages),
        chunked_llm_factory(text_chunks("See the wiki."), prompts=prompts),
        memory=MemoryService(backend),
    )

    frames = await _collect(orchestrator, _request(session.id))

    assert frames[1] == MemoryEvent(enabled=True, loaded=True)
    assert "- Prefers answers in bullet points" in prompts[0][0].content
    assert backend.searches[0][0] == "Where is the style guide?"
    assert backend.searches[0][1]["user_id"] == "u-1"
    messages, kwargs = backend.added[0]
    assert messages == [
        {"role": "user", "content": "Where is the style guide?"},
        {"role": "assistant", "content": "See the wiki."},
    ]
    assert kwargs == {"user_id": "u-1"}


@pytest.mark.asyncio
async def test_memory_reports_not_loaded_when_nothing_recalled(store, pages):
    backend = FakeMemoryBackend(fail=True)
    orchestrator = ChatOrchestrator(
        store, Retriever(pages), chunked_llm_factory(text_chunks("Hi")), memory=MemoryService(backend)
    )

    frames = await _collect(orchestrator, _request())

    assert frames[1] == MemoryEvent(enabled=True, loaded=False)
    assert frames[-1] is STREAM_DONE
    assert backend.added == []


@pytest.mark.asyncio
async def test_cancelled_turn_is_not_remembered(store, pages):
    session = await store.create_session(workspace_id="ws-1", user_id="u-1")
    backend = FakeMemoryBackend(["Likes tea"])
    orchestrator = ChatOrchestrator(
        store, Retriever(pages), chunked_llm_factory(text_chunks("a", "b", "c")), memory=MemoryService(backend)
    )

    stream = orchestrator.stream_chat(_request(session.id), CTX)
    async for frame in stream:
        if '"type": "chunk"' in frame:
            break
    await stream.aclose()

    assert backend.added == []
    assert await store.get_messages(session.id) == []
