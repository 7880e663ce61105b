import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.engine import Engine

from codebuddy.api.deps import get_completion_client, get_current_user_id, get_store
from codebuddy.core.database import get_engine
from codebuddy.schemas.chat import ChatRequest, ChatResponse
from codebuddy.services.chat import ChatService, ChatTurn
from codebuddy.services.completion import CompletionClient
from codebuddy.services.relay import SSE_HEADERS, QueueOutput, StreamRelay
from codebuddy.services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
    store: SessionStore = Depends(get_store),
    completion_client: CompletionClient = Depends(get_completion_client),
    engine: Engine = Depends(get_engine),
):
    """One chat turn. `stream: true` in the body answers with an event stream."""
    return await _run_turn(body, body.stream, request, user_id, store, completion_client, engine)


@router.post("/stream", response_model=None)
async def chat_stream(
    body: ChatRequest,
    request: Request,
    user_id: int = Depends(get_current_user_id),
    store: SessionStore = Depends(get_store),
    completion_client: CompletionClient = Depends(get_completion_client),
    engine: Engine = Depends(get_engine),
):
    return await _run_turn(body, True, request, user_id, store, completion_client, engine)


async def _run_turn(
    body: ChatRequest,
    streaming: bool,
    request: Request,
    user_id: int,
    store: SessionStore,
    completion_client: CompletionClient,
    engine: Engine,
) -> ChatResponse | StreamingResponse:
    service = ChatService(store, completion_client)
    turn = service.start_turn(user_id, body, client_info=request.headers.get("user-agent"))
    if not streaming:
        return await service.complete_turn(turn)
    return _stream_turn(StreamRelay(completion_client, engine), turn)


def _stream_turn(relay: StreamRelay, turn: ChatTurn) -> StreamingResponse:
    output = QueueOutput()

    async def relay_turn():
        try:
            await relay.run(turn.messages, output, turn.context)
        finally:
            await output.close()

    async def event_stream():
        task = asyncio.create_task(relay_turn())
        try:
            async for frame in output.frames():
                yield frame
            await task
        finally:
            if not task.done():
                # Client went away: fail the next write and stop the provider call
                logger.info(f"Stream for session {turn.session_id} cancelled by client")
                output.disconnect()
                task.cancel()

    headers = {
        **SSE_HEADERS,
        "X-Session-Id": str(turn.session_id),
        "X-New-Session": "true" if turn.is_new_session else "false",
    }
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)
