"""Shared fixtures: a scripted generation backend and both store flavours."""

from __future__ import annotations

import pytest

from core.gateway import AIGateway, GenerationBackend
from core.memory_store import MemoryStore
from core.sqlite_store import SQLiteStore


class FakeBackend(GenerationBackend):
    """Backend that replays scripted replies; exceptions in the script are raised."""

    def __init__(self, *replies, name: str = "fake", configured: bool = True) -> None:
        self.replies = list(replies)
        self.name = name
        self._configured = configured
        self.calls: list[dict] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def complete(self, system, messages, *, max_tokens, temperature):
        self.calls.append({"system": system, "messages": messages})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


ANSWER_JSON = (
    '{"content": "AI is the simulation of human intelligence by machines.", '
    '"sources": [{"title": "Wikipedia", "url": "https://en.wikipedia.org/wiki/AI", '
    '"snippet": "Artificial intelligence"}]}'
)


@pytest.fixture
def answering_gateway() -> AIGateway:
    return AIGateway([FakeBackend(ANSWER_JSON)])


@pytest.fixture
def offline_gateway() -> AIGateway:
    return AIGateway([])


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Run the test once per Store implementation."""
    if request.param == "memory":
        return MemoryStore()
    sqlite_store = SQLiteStore(tmp_path / "test.db")
    sqlite_store.init_db()
    return sqlite_store
