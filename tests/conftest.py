"""Shared fixtures: scripted chat/agent backends and a wired app context."""

from typing import List, Optional, Sequence
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from envoy_backend.core.config import Settings
from envoy_backend.core.deps import AppContext
from envoy_backend.models.chat import GenerationStats
from envoy_backend.services.chat_backend import ChatBackend
from envoy_backend.services.streaming import StreamingAssembler
from envoy_backend.services.thread_store import ThreadStore, Workspace


class FakeEncoding:
    """Whitespace tokenizer standing in for tiktoken, so tests never download encodings."""

    def encode(self, text: str) -> List[str]:
        return text.split()


@pytest.fixture(autouse=True)
def fake_encoding():
    with patch("envoy_backend.core.utils._get_encoding", return_value=FakeEncoding()) as mock:
        yield mock


class FakeChatBackend(ChatBackend):
    """A ChatBackend whose chat() replays scripted fragments instead of calling a provider."""

    def __init__(
        self,
        fragments: Sequence[str] = ("Hello", " world"),
        error: Optional[Exception] = None,
        model_id: Optional[str] = "test-model",
        stall_after: Optional[int] = None,
    ):
        client = MagicMock()
        client.close = AsyncMock()
        super().__init__(client, provider_name="Test", model_id=model_id)
        self.fragments = list(fragments)
        self.error = error
        self.calls: List[dict] = []
        self.closed = 0
        # With stall_after set, chat() waits on resume after that many fragments
        self.stall_after = stall_after
        self.resume = asyncio.Event()

    async def chat(self, prompt, system_prompt=None, history=(), model_id=None, on_stats=None):
        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "history": list(history), "model_id": model_id}
        )
        try:
            for index, fragment in enumerate(self.fragments):
                if index == self.stall_after:
                    await self.resume.wait()
                yield fragment
            if self.error is not None:
                raise self.error
            if on_stats is not None:
                on_stats(GenerationStats(tokens_generated=len(self.fragments), total_duration_ms=120))
        finally:
            self.closed += 1


class FakeAgent:
    """Stands in for AgentConnection: reports a context id, then replays fragments."""

    def __init__(self, fragments: Sequence[str] = ("Let's ", "plan."), context_id: str = "ctx-1"):
        self.fragments = list(fragments)
        self.context_id = context_id
        self.is_agent_connected = True
        self.calls: List[dict] = []

    async def send_message(self, prompt, context_id=None, on_context_id=None):
        self.calls.append({"prompt": prompt, "context_id": context_id})
        if on_context_id is not None:
            on_context_id(self.context_id)
        for fragment in self.fragments:
            yield fragment

    async def connect(self):
        return {"name": "Fake Agent"}

    async def aclose(self):
        self.is_agent_connected = False


async def collect(handle):
    """Drain a generation handle and return its events."""
    return [event async for event in handle.stream()]


@pytest.fixture
def store() -> ThreadStore:
    return ThreadStore()


@pytest.fixture
def workspace(store) -> Workspace:
    return Workspace(store)


@pytest.fixture
def chat_backend() -> FakeChatBackend:
    return FakeChatBackend()


@pytest.fixture
def assembler(store, chat_backend) -> StreamingAssembler:
    return StreamingAssembler(store, chat_backend)


@pytest.fixture
def settings() -> Settings:
    return Settings(THREADS_DIR="", AGENT_URL=None, OPENAI_MODEL="test-model")


@pytest.fixture
def app_context(settings, chat_backend) -> AppContext:
    return AppContext.build(settings, chat_backend)
