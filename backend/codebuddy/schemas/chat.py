"""Wire schemas for a chat turn and its stream events."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryTurn(WireModel):
    sender: Literal["user", "ai"]
    content: str


class ChatRequest(WireModel):
    message: str
    conversation_history: list[HistoryTurn] = Field(default_factory=list)
    session_id: Optional[int] = None
    stream: bool = False


class ChatResponse(WireModel):
    response: str
    timestamp: str
    session_id: int
    is_new_session: bool


# --- Stream events ---


class ContentEvent(WireModel):
    content: str
    done: Literal[False] = False


class DoneEvent(WireModel):
    done: Literal[True] = True
    full_response: str


class ErrorEvent(WireModel):
    error: str


StreamEvent = Union[ContentEvent, DoneEvent, ErrorEvent]

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def format_event(event: StreamEvent) -> str:
    """Frame an event as `data: <json>` followed by a blank line."""
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


def parse_event(payload: str) -> StreamEvent:
    return _event_adapter.validate_json(payload)


def is_terminal(event: StreamEvent) -> bool:
    return not isinstance(event, ContentEvent)
