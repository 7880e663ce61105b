"""Python client for the chat API, including the event-stream consumer."""

import logging
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError as SchemaError

from codebuddy.core.errors import ProviderError
from codebuddy.schemas.chat import (
    ChatRequest,
    ChatResponse,
    ErrorEvent,
    HistoryTurn,
    StreamEvent,
    is_terminal,
    parse_event,
)

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data: "


def extract_frames(buffer: str) -> tuple[list[str], str]:
    """Split complete frames off the front of ``buffer``.

    Returns the complete frames (without their blank-line terminator) and the
    unterminated remainder, which should be prepended to the next chunk.
    """
    frames = []
    start = 0
    end = buffer.find(FRAME_DELIMITER, start)
    while end != -1:
        frames.append(buffer[start:end])
        start = end + len(FRAME_DELIMITER)
        end = buffer.find(FRAME_DELIMITER, start)
    return frames, buffer[start:]


def parse_frame(frame: str) -> Optional[StreamEvent]:
    """Decode a `data: ` frame. Anything else, or a malformed payload, yields None."""
    if not frame.startswith(DATA_PREFIX):
        return None
    try:
        return parse_event(frame[len(DATA_PREFIX):])
    except SchemaError as e:
        logger.warning(f"Skipping malformed stream frame: {e}")
        return None


class ChatClient:
    """Holds one conversation: the server session id and the local history."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http_client: Optional[httpx.AsyncClient] = None,
        user_id: Optional[int] = None,
    ):
        self.http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        if user_id is not None:
            self.http.headers["X-User-Id"] = str(user_id)
        self.session_id: Optional[int] = None
        self.history: list[HistoryTurn] = []

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    def new_session(self) -> None:
        self.session_id = None
        self.history = []

    def _payload(self, message: str) -> dict:
        request = ChatRequest(
            message=message,
            conversation_history=self.history,
            session_id=self.session_id,
        )
        return request.model_dump(by_alias=True, exclude={"stream"})

    def _record(self, message: str, reply: Optional[str]) -> None:
        self.history.append(HistoryTurn(sender="user", content=message))
        if reply is not None:
            self.history.append(HistoryTurn(sender="ai", content=reply))

    async def send(self, message: str) -> str:
        """Blocking turn. Returns the reply text."""
        resp = await self.http.post("/api/chat", json=self._payload(message))
        if resp.status_code == 502:
            self._record(message, None)
            raise ProviderError(resp.json().get("error", "AI service error"))
        resp.raise_for_status()

        data = ChatResponse.model_validate(resp.json())
        self.session_id = data.session_id
        self._record(message, data.response)
        return data.response

    async def stream(self, message: str) -> AsyncIterator[StreamEvent]:
        """Streaming turn. Yields content events and the final done event.

        An error frame raises ProviderError. Frames may be split across
        network chunks; the buffer carries partial frames forward.
        """
        async with self.http.stream("POST", "/api/chat/stream", json=self._payload(message)) as resp:
            resp.raise_for_status()
            if "x-session-id" in resp.headers:
                self.session_id = int(resp.headers["x-session-id"])

            buffer = ""
            async for chunk in resp.aiter_text():
                buffer += chunk
                frames, buffer = extract_frames(buffer)
                for frame in frames:
                    event = parse_frame(frame)
                    if event is None:
                        continue
                    if isinstance(event, ErrorEvent):
                        self._record(message, None)
                        raise ProviderError(event.error)
                    yield event
                    if is_terminal(event):
                        self._record(message, event.full_response)
                        return

        self._record(message, None)
        raise ProviderError("Stream ended without a terminal frame")
