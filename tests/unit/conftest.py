import asyncio

import pytest
from fastapi.testclient import TestClient

from src.memory.service import MemoryService
from src.rag.pages import SQLitePageRepository
from src.rag.retriever import Retriever
from src.server.chat.dependencies import set_chat_orchestrator, set_memory_service, set_page_repository
from src.server.chat.orchestrator import ChatOrchestrator
from src.server.session.dependencies import set_session_store
from src.server.session.store import SQLiteSessionStore
from tests.unit.fakes import FakeMemoryBackend, fake_llm_factory


@pytest.fixture
def session_store(tmp_path):
    store = SQLiteSessionStore(str(tmp_path / "sessions_api.db"))
    asyncio.run(store.init())
    set_session_store(store)
    yield store
    asyncio.run(store.close())
    set_session_store(None)


@pytest.fixture
def page_repository(tmp_path):
    pages = SQLitePageRepository(str(tmp_path / "pages.db"))
    asyncio.run(pages.init())
    set_page_repository(pages)
    yield pages
    set_page_repository(None)


@pytest.fixture
def memory_backend():
    return FakeMemoryBackend(["Prefers short answers"])


@pytest.fixture
def memory_service(memory_backend):
    service = MemoryService(memory_backend)
    set_memory_service(service)
    yield service
    set_memory_service(None)


@pytest.fixture
def orchestrator(session_store, page_repository, memory_service):
    return ChatOrchestrator(
        session_store,
        Retriever(page_repository),
        llm_factory=fake_llm_factory("Hello from the workspace"),
        memory=memory_service,
    )


@pytest.fixture
def api_client(orchestrator, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    set_chat_orchestrator(orchestrator)

    from src.server.app import app

    with TestClient(app) as test_client:
        yield test_client

    set_chat_orchestrator(None)
