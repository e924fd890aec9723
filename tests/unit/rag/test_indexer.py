import pytest
import pytest_asyncio
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.vectorstores import InMemoryVectorStore

from src.rag.indexer import PageIndexer
from src.rag.pages import SQLitePageRepository
from src.rag.retriever import Retriever

LONG_TEXT = " ".join(f"word{i}" for i in range(300))


@pytest.fixture
def vector_store():
    return InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=16))


@pytest_asyncio.fixture
async def pages(tmp_path, vector_store):
    repository = SQLitePageRepository(
        str(tmp_path / "pages.db"),
        indexer=PageIndexer(vector_store, persist_path=str(tmp_path / "index.json")),
    )
    await repository.init()
    return repository


def page_chunks(store, page_id):
    return sorted(doc_id for doc_id in store.store if doc_id.startswith(f"{page_id}:"))


def test_split_respects_chunk_size():
    indexer = PageIndexer(InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=4)))

    chunks = indexer.split(LONG_TEXT)

    assert len(chunks) > 1
    assert all(len(chunk) <= 512 for chunk in chunks)
    assert indexer.split("null") == []
    assert indexer.split("") == []


@pytest.mark.asyncio
async def test_upserted_page_becomes_searchable(pages, vector_store):
    await pages.upsert_page(
        page_id="page-a", workspace_id="ws-1", title="Alpha", text_content=LONG_TEXT, slug_id="alpha"
    )
    first_chunk = vector_store.get_by_ids(["page-a:0"])[0]

    sources = await Retriever(pages, vector_store=vector_store).retrieve(first_chunk.page_content, "ws-1")

    assert len(page_chunks(vector_store, "page-a")) > 1
    assert first_chunk.metadata["workspace_id"] == "ws-1"
    assert sources[0].page_id == "page-a"
    assert sources[0].slug_id == "alpha"
    assert sources[0].chunk_index == 0
    assert await Retriever(pages, vector_store=vector_store).retrieve(first_chunk.page_content, "ws-2") == []


@pytest.mark.asyncio
async def test_reindex_replaces_stale_chunks(pages, vector_store):
    await pages.upsert_page(page_id="page-a", workspace_id="ws-1", title="Alpha", text_content=LONG_TEXT)

    await pages.upsert_page(page_id="page-a", workspace_id="ws-1", title="Alpha", text_content="Short now")

    assert page_chunks(vector_store, "page-a") == ["page-a:0"]
    assert vector_store.get_by_ids(["page-a:0"])[0].page_content == "Short now"


@pytest.mark.asyncio
async def test_deleted_page_leaves_the_index(pages, vector_store):
    await pages.upsert_page(page_id="page-a", workspace_id="ws-1", title="Alpha", text_content=LONG_TEXT)
    await pages.upsert_page(page_id="page-b", workspace_id="ws-1", title="Beta", text_content="Beta body")

    await pages.upsert_page(
        page_id="page-a", workspace_id="ws-1", title="Alpha", text_content=LONG_TEXT, deleted=True
    )
    assert await pages.delete_page("page-b", "ws-1") is True
    assert await pages.delete_page("page-b", "ws-1") is False

    assert vector_store.store == {}
    assert await pages.get_pages(["page-a", "page-b"], "ws-1") == {}


@pytest.mark.asyncio
async def test_index_is_persisted_and_reloadable(pages, tmp_path):
    await pages.upsert_page(page_id="page-a", workspace_id="ws-1", title="Alpha", text_content="Alpha body")

    reloaded = InMemoryVectorStore.load(str(tmp_path / "index.json"), embedding=DeterministicFakeEmbedding(size=16))

    assert reloaded.get_by_ids(["page-a:0"])[0].metadata["title"] == "Alpha"


@pytest.mark.asyncio
async def test_index_failure_still_stores_page(tmp_path):
    class Exploding(InMemoryVectorStore):
        async def aadd_documents(self, documents, **kwargs):
            raise ConnectionError("embedding API down")

    repository = SQLitePageRepository(
        str(tmp_path / "pages.db"),
        indexer=PageIndexer(Exploding(embedding=DeterministicFakeEmbedding(size=4))),
    )
    await repository.init()

    await repository.upsert_page(page_id="page-a", workspace_id="ws-1", title="Alpha", text_content="Alpha body")

    assert list(await repository.get_pages(["page-a"], "ws-1")) == ["page-a"]
