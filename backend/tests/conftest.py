"""Shared test fixtures for backend tests."""

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from codebuddy.api.deps import get_completion_client
from codebuddy.client import extract_frames
from codebuddy.core.database import get_engine, get_session
from codebuddy.services.completion import CompletionClient
from codebuddy.services.llm.base import BaseLLMProvider, LLMResponse

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import codebuddy.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


class FakeProvider(BaseLLMProvider):
    """Provider that streams canned deltas, optionally failing at a given delta."""

    model = "fake-model"

    def __init__(self, deltas=("Hello", " from", " buddy"), error=None, error_at=0, delay=0.0):
        self.deltas = list(deltas)
        self.error = error
        self.error_at = error_at
        self.delay = delay
        self.calls = []
        self.pulled = 0
        self.closed = False

    async def chat(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return LLMResponse(content="".join(self.deltas), usage={"total_tokens": 3})

    async def chat_stream(self, messages):
        self.calls.append(messages)
        try:
            for i, delta in enumerate(self.deltas):
                if self.error and i == self.error_at:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.pulled += 1
                yield delta
            if self.error and self.error_at >= len(self.deltas):
                raise self.error
        finally:
            self.closed = True


class ScriptedCompletionClient(CompletionClient):
    """Completion client that drives the sink directly with a fixed script."""

    def __init__(self, deltas=(), full_text=None, error=None):
        super().__init__(FakeProvider(deltas))
        self.script_deltas = list(deltas)
        self.full_text = "".join(deltas) if full_text is None else full_text
        self.script_error = error
        self.stream_calls = 0

    async def complete_stream(self, messages, sink):
        self.stream_calls += 1
        for delta in self.script_deltas:
            await sink.on_delta(delta)
        if self.script_error is not None:
            await sink.on_error(self.script_error)
        else:
            await sink.on_done(self.full_text)


def read_frames(text: str) -> list[str]:
    frames, remainder = extract_frames(text)
    assert remainder == ""
    return frames


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def completion_client(provider):
    return CompletionClient(provider)


@pytest.fixture
def app(completion_client):
    """The FastAPI app wired to the test DB and the fake completion client."""
    from codebuddy.main import app

    # Use FastAPI's dependency override for the DB and the provider
    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_engine] = lambda: test_engine
    app.dependency_overrides[get_completion_client] = lambda: completion_client

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """FastAPI TestClient with all external deps patched."""
    with patch("codebuddy.core.database.engine", test_engine):
        with TestClient(app) as c:
            yield c
