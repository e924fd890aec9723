from typing import Any, Callable, Iterable

from langchain_core.language_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk
from langchain_core.outputs import ChatGenerationChunk


def fake_llm_factory(*replies: str) -> Callable[..., BaseChatModel]:
    """Factory handing out a fresh fake model per call, one reply each."""
    pending = list(replies)

    def _factory(model_id=None, *, thinking: bool = False) -> BaseChatModel:
        reply = pending.pop(0) if len(pending) > 1 else pending[0]
        return GenericFakeChatModel(messages=iter([AIMessage(content=reply)]))

    return _factory


class ChunkedFakeChatModel(GenericFakeChatModel):
    """Streams the given chunks verbatim, reasoning deltas included."""

    chunks: list = []
    prompts: Any = None

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        if self.prompts is not None:
            self.prompts.append(messages)
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield ChatGenerationChunk(message=chunk)


def chunked_llm_factory(chunks: Iterable, prompts: Any = None) -> Callable[..., BaseChatModel]:
    """Chunks are AIMessageChunks; an exception instance is raised in place.

    When ``prompts`` is a list, every prompt the model receives is appended to it.
    """
    chunk_list = list(chunks)

    def _factory(model_id=None, *, thinking: bool = False) -> BaseChatModel:
        return ChunkedFakeChatModel(messages=iter([]), chunks=chunk_list, prompts=prompts)

    return _factory


def text_chunks(*parts: str) -> list[AIMessageChunk]:
    return [AIMessageChunk(content=part) for part in parts]


class FakeMemoryBackend:
    """Stands in for mem0's AsyncMemory; records what gets added."""

    def __init__(self, memories: Iterable[str] = (), fail: bool = False):
        self.memories = list(memories)
        self.fail = fail
        self.added = []
        self.searches = []

    async def add(self, messages, **kwargs):
        if self.fail:
            raise ConnectionError("memory store offline")
        self.added.append((messages, kwargs))
        return {"results": [{"id": "mem-new", "memory": messages[0]["content"], "event": "ADD"}]}

    async def get_all(self, **kwargs):
        if self.fail:
            raise ConnectionError("memory store offline")
        return {"results": [{"id": f"mem-{i}", "memory": text} for i, text in enumerate(self.memories)]}

    async def search(self, query, **kwargs):
        self.searches.append((query, kwargs))
        return await self.get_all(**kwargs)
