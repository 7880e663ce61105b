"""Tests for the Completion Client's blocking and streaming calls."""

import asyncio

import pytest

from codebuddy.core.errors import ClientDisconnected, ProviderError
from codebuddy.services.completion import (
    NO_RESPONSE,
    PROVIDER_FAILURE,
    PROVIDER_TIMEOUT,
    CompletionClient,
)
from codebuddy.services.llm.base import Message
from tests.conftest import FakeProvider

PROMPT = [Message(role="system", content="be brief"), Message(role="user", content="hi")]


class RecordingSink:
    def __init__(self, fail_on_delta=None):
        self.calls = []
        self.fail_on_delta = fail_on_delta

    async def on_delta(self, text):
        self.calls.append(("delta", text))
        if self.fail_on_delta is not None and len(self.deltas) == self.fail_on_delta:
            raise ClientDisconnected("gone")

    async def on_done(self, full_text):
        self.calls.append(("done", full_text))

    async def on_error(self, message):
        self.calls.append(("error", message))

    @property
    def deltas(self):
        return [text for kind, text in self.calls if kind == "delta"]


def test_complete_returns_text():
    client = CompletionClient(FakeProvider(["A closure ", "is..."]))
    assert asyncio.run(client.complete(PROMPT)) == "A closure is..."


def test_complete_returns_sentinel_when_empty():
    client = CompletionClient(FakeProvider(deltas=[]))
    assert asyncio.run(client.complete(PROMPT)) == NO_RESPONSE


def test_complete_raises_provider_error():
    client = CompletionClient(FakeProvider(error=ConnectionError("network down")))
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(client.complete(PROMPT))
    assert str(exc_info.value) == PROVIDER_FAILURE
    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.parametrize(
    "deltas",
    [
        ["A ", "closure ", "is..."],
        ["single"],
        [],
        ["multi\nline ", "```py\nx = 1\n```", " ünïcödé"],
    ],
)
def test_stream_deltas_join_to_full_text(deltas):
    sink = RecordingSink()
    asyncio.run(CompletionClient(FakeProvider(deltas)).complete_stream(PROMPT, sink))

    assert sink.calls[-1] == ("done", "".join(deltas))
    assert "".join(sink.deltas) == sink.calls[-1][1]


def test_stream_skips_empty_deltas():
    sink = RecordingSink()
    asyncio.run(CompletionClient(FakeProvider(["a", "", "b"])).complete_stream(PROMPT, sink))
    assert sink.calls == [("delta", "a"), ("delta", "b"), ("done", "ab")]


def test_stream_failure_calls_on_error_once():
    provider = FakeProvider(["one ", "two ", "three"], error=RuntimeError("rate limited"), error_at=2)
    sink = RecordingSink()

    asyncio.run(CompletionClient(provider).complete_stream(PROMPT, sink))

    assert sink.calls == [("delta", "one "), ("delta", "two "), ("error", PROVIDER_FAILURE)]
    assert provider.closed


def test_stream_failure_before_first_delta():
    sink = RecordingSink()
    asyncio.run(CompletionClient(FakeProvider(error=RuntimeError("401"))).complete_stream(PROMPT, sink))
    assert sink.calls == [("error", PROVIDER_FAILURE)]


def test_stream_idle_timeout():
    provider = FakeProvider(["slow"], delay=1.0)
    sink = RecordingSink()

    asyncio.run(CompletionClient(provider, idle_timeout=0.05).complete_stream(PROMPT, sink))

    assert sink.calls == [("error", PROVIDER_TIMEOUT)]
    assert provider.closed


def test_stream_zero_timeout_waits():
    provider = FakeProvider(["a", "b"], delay=0.01)
    sink = RecordingSink()

    asyncio.run(CompletionClient(provider, idle_timeout=0).complete_stream(PROMPT, sink))

    assert sink.calls[-1] == ("done", "ab")


def test_stream_sink_disconnect_stops_consuming():
    provider = FakeProvider(["a", "b", "c", "d"])
    sink = RecordingSink(fail_on_delta=2)

    with pytest.raises(ClientDisconnected):
        asyncio.run(CompletionClient(provider).complete_stream(PROMPT, sink))

    assert sink.deltas == ["a", "b"]
    assert provider.pulled == 2
    assert provider.closed
    assert all(kind == "delta" for kind, _ in sink.calls)
