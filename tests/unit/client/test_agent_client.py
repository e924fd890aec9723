from types import SimpleNamespace

import pytest

from src.client.agent_client import STREAM_MODES, AgentRuntimeClient


class FakeRuns:
    def __init__(self):
        self.calls = []

    def stream(self, thread_id, assistant_id, **kwargs):
        self.calls.append((thread_id, assistant_id, kwargs))

        async def parts():
            yield ("values", {"messages": []})

        return parts()


class FakeThreads:
    async def create(self):
        return {"thread_id": "thread-42"}


@pytest.fixture
def runtime(monkeypatch):
    monkeypatch.setenv("LANGGRAPH_MODEL_NAME", "doubao-seed")
    monkeypatch.setenv("LANGGRAPH_THINKING_ENABLED", "true")
    monkeypatch.delenv("LANGGRAPH_RECURSION_LIMIT", raising=False)
    fake = SimpleNamespace(threads=FakeThreads(), runs=FakeRuns())
    return AgentRuntimeClient(client=fake, assistant_id="lead_agent"), fake.runs


@pytest.mark.asyncio
async def test_create_thread_returns_id(runtime):
    client, _ = runtime

    assert await client.create_thread() == "thread-42"


@pytest.mark.asyncio
async def test_stream_run_sends_user_message_and_plan_config(runtime):
    client, runs = runtime

    parts = [part async for part in client.stream_run("thread-42", "Build a page")]

    thread_id, assistant_id, kwargs = runs.calls[0]
    assert (thread_id, assistant_id) == ("thread-42", "lead_agent")
    assert kwargs["input"] == {"messages": [{"role": "user", "content": "Build a page"}]}
    assert kwargs["stream_mode"] == STREAM_MODES
    assert kwargs["config"]["recursion_limit"] == 1000
    assert kwargs["config"]["configurable"] == {
        "model_name": "doubao-seed",
        "thinking_enabled": True,
        "is_plan_mode": True,
        "thread_id": "thread-42",
    }
    assert parts == [("values", {"messages": []})]


def test_resume_sends_command(runtime):
    client, runs = runtime

    client.resume("thread-42", "Dark theme")

    _, _, kwargs = runs.calls[0]
    assert kwargs["command"] == {"resume": "Dark theme"}
    assert "input" not in kwargs
