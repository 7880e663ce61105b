"""Stream Relay: runs one streaming chat turn and forwards it as SSE frames.

The client always sees zero or more content frames followed by exactly one
terminal frame (done or error), unless it disconnected first. The AI message
is persisted only after a successful completion; a provider failure or a
client disconnect leaves the session with just the user's message.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Protocol

from sqlalchemy.engine import Engine
from sqlmodel import Session

from codebuddy.core.errors import ClientDisconnected, StorageError
from codebuddy.schemas.chat import ContentEvent, DoneEvent, ErrorEvent, StreamEvent, format_event
from codebuddy.services.completion import NO_RESPONSE, PROVIDER_FAILURE, CompletionClient
from codebuddy.services.llm.base import Message
from codebuddy.services.session_store import SessionStore

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PersistenceContext:
    session_id: int
    user_id: int
    is_new_session: bool


class OutputSink(Protocol):
    async def write(self, frame: str) -> None: ...

    async def close(self) -> None: ...


class QueueOutput:
    """OutputSink that feeds a StreamingResponse body through a queue."""

    def __init__(self):
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.closed = False
        self.disconnected = False

    async def write(self, frame: str) -> None:
        if self.disconnected:
            raise ClientDisconnected("Client disconnected")
        if self.closed:
            raise RuntimeError("Write after the stream was closed")
        await self._queue.put(frame)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            await self._queue.put(None)

    def disconnect(self) -> None:
        self.disconnected = True

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class _TurnSink:
    """CompletionSink for a single relay invocation."""

    def __init__(self, relay: "StreamRelay", output: OutputSink, context: PersistenceContext):
        self.relay = relay
        self.output = output
        self.context = context
        self.state = RelayState.IDLE
        self.accumulated = ""
        self.deltas = 0

    def _is_finished(self) -> bool:
        return self.state in (RelayState.COMPLETED, RelayState.FAILED)

    async def _send(self, event: StreamEvent) -> None:
        await self.output.write(format_event(event))

    async def on_delta(self, text: str) -> None:
        if self._is_finished():
            logger.warning(f"Dropping delta after {self.state.value} in session {self.context.session_id}")
            return
        if self.state is RelayState.IDLE:
            self.state = RelayState.STREAMING
            logger.debug(f"Session {self.context.session_id}: streaming")
        self.accumulated += text
        self.deltas += 1
        await self._send(ContentEvent(content=text))

    async def on_done(self, full_text: str) -> None:
        if self._is_finished():
            return
        if full_text != self.accumulated:
            # The provider's final text wins; it is what gets stored
            logger.warning(
                f"Session {self.context.session_id}: streamed text ({len(self.accumulated)} chars) "
                f"differs from final text ({len(full_text)} chars), keeping final text"
            )
        full_text = full_text or NO_RESPONSE
        self.state = RelayState.COMPLETED
        await self._send(DoneEvent(full_response=full_text))
        self.relay.persist_reply(self.context, full_text, self.deltas)
        await self.output.close()
        logger.debug(f"Session {self.context.session_id}: completed after {self.deltas} deltas")

    async def on_error(self, message: str) -> None:
        if self._is_finished():
            return
        self.state = RelayState.FAILED
        await self._send(ErrorEvent(error=message))
        await self.output.close()
        logger.debug(f"Session {self.context.session_id}: failed ({message})")


class StreamRelay:
    def __init__(self, completion_client: CompletionClient, engine: Engine):
        self.completion_client = completion_client
        self.engine = engine

    async def run(self, messages: list[Message], output: OutputSink, context: PersistenceContext) -> RelayState:
        """Run one turn to a terminal state. Never retries the provider."""
        sink = _TurnSink(self, output, context)
        try:
            await self.completion_client.complete_stream(messages, sink)
        except ClientDisconnected:
            logger.info(
                f"Client left session {context.session_id} mid-stream, "
                f"discarding {len(sink.accumulated)} streamed chars"
            )
            sink.state = RelayState.FAILED
        except Exception as e:
            logger.exception(f"Stream relay failed for session {context.session_id}: {e}")
            try:
                await sink.on_error(PROVIDER_FAILURE)
            except ClientDisconnected:
                sink.state = RelayState.FAILED
        return sink.state

    def persist_reply(self, context: PersistenceContext, content: str, deltas: int) -> None:
        metadata = {"model": self.completion_client.model, "streamed": True, "deltas": deltas}
        try:
            with Session(self.engine) as db:
                SessionStore(db).append_message(
                    context.session_id, context.user_id, "ai", content, None, metadata
                )
        except StorageError as e:
            # The terminal frame is already out; the reply is lost from history
            logger.error(f"Failed to persist reply for session {context.session_id}: {e}")
